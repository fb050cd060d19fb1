"""User profile and administration endpoints."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from accounts.database import get_db
from accounts.dependencies import admin_required, get_current_user
from accounts.models.user import User
from accounts.schemas.user import (
    AdminUserCreate,
    AdminUserUpdate,
    ProfileUpdate,
    UserListResponse,
    UserResponse,
)
from accounts.services.users import get_user_service

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _list_response(users: list[User]) -> UserListResponse:
    return UserListResponse(results=len(users), items=[UserResponse.model_validate(u) for u in users])


# --- Current user ---


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)) -> UserResponse:
    """Profile of the authenticated user."""
    return UserResponse.model_validate(user)


@router.patch("/me", response_model=UserResponse)
def update_me(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Update name, email or photo of the authenticated user."""
    service = get_user_service()
    updated = service.update_profile(db, user, body.model_dump(exclude_unset=True))
    return UserResponse.model_validate(updated)


@router.delete("/me", status_code=204)
def delete_me(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Response:
    """Deactivate the authenticated user's account."""
    get_user_service().deactivate(db, user)
    return Response(status_code=204)


# --- Admin ---


@router.get("/", response_model=UserListResponse)
def list_users(_: User = Depends(admin_required), db: Session = Depends(get_db)) -> UserListResponse:
    """List every user."""
    return _list_response(get_user_service().list_users(db))


@router.post("/", response_model=UserResponse, status_code=201)
def create_user(
    body: AdminUserCreate,
    _: User = Depends(admin_required),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Create a user, optionally with the admin role."""
    service = get_user_service()
    user = service.create_user(
        db,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        password_confirm=body.password_confirm,
        photo=body.photo,
        role=body.role,
        registered_date=body.registered_date,
    )
    return UserResponse.model_validate(user)


@router.post("/sample-users", response_model=UserListResponse, status_code=201)
def create_sample_users(
    count: int = 5,
    _: User = Depends(admin_required),
    db: Session = Depends(get_db),
) -> UserListResponse:
    """Generate numbered test accounts."""
    return _list_response(get_user_service().create_sample_users(db, count))


@router.get("/registered/{start_month}/{end_month}", response_model=UserListResponse)
def registered_between_months(
    start_month: int,
    end_month: int,
    year: int | None = None,
    _: User = Depends(admin_required),
    db: Session = Depends(get_db),
) -> UserListResponse:
    """Users registered between two months (inclusive) of a year."""
    service = get_user_service()
    return _list_response(service.registered_between_months(db, start_month, end_month, year))


@router.patch("/renewal/{email}", response_model=UserResponse)
def renew_user(email: str, _: User = Depends(admin_required), db: Session = Depends(get_db)) -> UserResponse:
    """Extend an expired account."""
    return UserResponse.model_validate(get_user_service().renew_user(db, email))


@router.patch("/activate/{email}", response_model=UserResponse)
def activate_user(email: str, _: User = Depends(admin_required), db: Session = Depends(get_db)) -> UserResponse:
    """Re-enable a deactivated account."""
    return UserResponse.model_validate(get_user_service().activate_user(db, email))


@router.get("/{email}", response_model=UserResponse)
def get_user(email: str, _: User = Depends(admin_required), db: Session = Depends(get_db)) -> UserResponse:
    """Look up a user by email."""
    return UserResponse.model_validate(get_user_service().get_by_email(db, email))


@router.patch("/{email}", response_model=UserResponse)
def update_user(
    email: str,
    body: AdminUserUpdate,
    _: User = Depends(admin_required),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Update any editable field of a user."""
    service = get_user_service()
    return UserResponse.model_validate(service.update_user(db, email, body.model_dump(exclude_unset=True)))


@router.delete("/{email}", status_code=204)
def delete_user(email: str, _: User = Depends(admin_required), db: Session = Depends(get_db)) -> Response:
    """Delete a user record."""
    get_user_service().delete_user(db, email)
    return Response(status_code=204)
