"""Authentication and authorization dependencies for FastAPI routes."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from accounts.database import get_db
from accounts.exceptions import AuthorizationError
from accounts.models.user import Role, User
from accounts.services.auth import get_auth_service


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Authenticate the Bearer token and attach the user to request.state."""
    auth_service = get_auth_service()
    user = auth_service.authenticate(db, request.headers.get("Authorization"))
    request.state.user = user
    return user


class RoleChecker:
    """Dependency that only lets through users holding one of the allowed roles."""

    def __init__(self, allowed_roles: list[str]):
        self.allowed_roles = {Role(role).value for role in allowed_roles}

    def __call__(self, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in self.allowed_roles:
            raise AuthorizationError()
        return current_user


def require_roles(*roles: str) -> RoleChecker:
    return RoleChecker(list(roles))


admin_required = require_roles(Role.ADMIN)
