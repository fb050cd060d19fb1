"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from accounts.database import get_db
from accounts.rate_limit import limiter
from accounts.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    TokenResponse,
)
from accounts.schemas.user import UserResponse
from accounts.services.auth import AuthResult, get_auth_service

logger = logging.getLogger("accounts")

router = APIRouter(prefix="/api/v1/users", tags=["Authentication"])


def _token_response(result: AuthResult) -> TokenResponse:
    return TokenResponse(token=result.token, user=UserResponse.model_validate(result.user))


@router.post("/signup", response_model=TokenResponse, status_code=201)
@limiter.limit("5/minute")
def signup(request: Request, body: SignupRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """Register a new user account."""
    auth_service = get_auth_service()
    result = auth_service.signup(
        db,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        password_confirm=body.password_confirm,
        photo=body.photo,
    )
    return _token_response(result)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """Authenticate and receive a JWT token."""
    auth_service = get_auth_service()
    result = auth_service.login(db, body.email, body.password)
    return _token_response(result)


@router.post("/logout", response_model=MessageResponse)
def logout() -> MessageResponse:
    """Tokens are stateless; the client drops its copy."""
    return MessageResponse(detail="Logged out successfully")


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def forgot_password(request: Request, body: ForgotPasswordRequest, db: Session = Depends(get_db)) -> MessageResponse:
    """Email a password reset link to the account owner."""
    auth_service = get_auth_service()
    auth_service.request_password_reset(db, body.email)
    return MessageResponse(detail="Token sent to email!")


@router.patch("/reset-password/{token}", response_model=TokenResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request, token: str, body: ResetPasswordRequest, db: Session = Depends(get_db)
) -> TokenResponse:
    """Reset password using a valid token. Returns JWT for auto-login."""
    auth_service = get_auth_service()
    result = auth_service.complete_password_reset(db, token, body.password, body.password_confirm)
    return _token_response(result)
