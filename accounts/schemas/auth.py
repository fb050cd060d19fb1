"""Pydantic schemas for authentication endpoints."""

from pydantic import BaseModel

from accounts.schemas.user import UserResponse


class SignupRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    password: str | None = None
    password_confirm: str | None = None
    photo: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class TokenResponse(BaseModel):
    token: str
    user: UserResponse


class ForgotPasswordRequest(BaseModel):
    email: str | None = None


class ResetPasswordRequest(BaseModel):
    password: str | None = None
    password_confirm: str | None = None


class MessageResponse(BaseModel):
    detail: str
