"""Authentication service: signup, login, bearer-token checks and password reset."""

import logging
import secrets
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from accounts.config import get_settings
from accounts.database import to_epoch_seconds
from accounts.exceptions import (
    AccountDisabled,
    AccountExpired,
    BadCredentials,
    DeliveryError,
    InvalidToken,
    MissingCredentials,
    NoToken,
    NotFoundError,
    PasswordMismatch,
    StalePassword,
    TokenUserNotFound,
    ValidationError,
)
from accounts.models.user import User
from accounts.services.email import EmailService, get_email_service
from accounts.services.jwt import JWTService, get_jwt_service
from accounts.services.passwords import PasswordHasher, get_password_hasher, password_problem
from accounts.services.reset_tokens import PasswordResetTokenManager
from accounts.services.users import UserService, get_user_service

logger = logging.getLogger("accounts")


@dataclass
class AuthResult:
    """A user together with a freshly issued session token."""

    user: User
    token: str


class AuthService:
    """Handles user registration, authentication and password resets."""

    def __init__(
        self,
        jwt_service: JWTService | None = None,
        hasher: PasswordHasher | None = None,
        reset_tokens: PasswordResetTokenManager | None = None,
        email_service: EmailService | None = None,
        user_service: UserService | None = None,
    ) -> None:
        self.jwt = jwt_service or get_jwt_service()
        self.hasher = hasher or get_password_hasher()
        self.reset_tokens = reset_tokens or PasswordResetTokenManager()
        self.email = email_service or get_email_service()
        self.users = user_service or get_user_service()
        self.public_base_url = get_settings().PUBLIC_BASE_URL.rstrip("/")
        self._dummy_hash: str | None = None

    def _verify_or_burn(self, user: User | None, password: str) -> bool:
        """Check the password, spending the same bcrypt work when there is no such user."""
        if user is None:
            if self._dummy_hash is None:
                self._dummy_hash = self.hasher.hash(secrets.token_hex(16))
            self.hasher.verify(password, self._dummy_hash)
            return False
        return self.hasher.verify(password, user.password_hash)

    def signup(
        self,
        db: Session,
        first_name: str | None,
        last_name: str | None,
        email: str | None,
        password: str | None,
        password_confirm: str | None,
        photo: str | None = None,
    ) -> AuthResult:
        """Register a new user with the default role and log them in."""
        user = self.users.create_user(
            db,
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
            password_confirm=password_confirm,
            photo=photo,
        )
        return AuthResult(user=user, token=self.jwt.create_token(user.id))

    def login(self, db: Session, email: str | None, password: str | None) -> AuthResult:
        """Authenticate a user by email and password."""
        if not email or not password:
            raise MissingCredentials()

        user = db.query(User).filter(User.email == email.strip()).first()
        if not self._verify_or_burn(user, password):
            logger.warning("Failed login for %s", email)
            raise BadCredentials()

        if not user.active:
            raise AccountDisabled()

        if user.has_expired():
            raise AccountExpired()

        return AuthResult(user=user, token=self.jwt.create_token(user.id))

    def authenticate(self, db: Session, authorization: str | None) -> User:
        """Resolve an Authorization header to the user it belongs to.

        Tokens issued before the user's last password change are refused even
        when their signature and expiry are fine.
        """
        token = None
        if authorization and authorization.startswith("Bearer "):
            token = authorization[7:].strip()
        if not token:
            raise NoToken()

        claims = self.jwt.decode_token(token)
        try:
            user_id = int(claims.subject)
        except ValueError:
            raise InvalidToken() from None

        user = db.get(User, user_id)
        if not user:
            raise TokenUserNotFound()

        if user.password_changed_at and claims.issued_at < to_epoch_seconds(user.password_changed_at):
            raise StalePassword()

        return user

    def request_password_reset(self, db: Session, email: str | None) -> str:
        """Issue a reset token for the account and email the link to it.

        The link always points at PUBLIC_BASE_URL, never at a host taken from the
        request. Returns the raw token. If the email cannot be delivered the token
        is withdrawn again before the DeliveryError propagates.
        """
        if not email:
            raise ValidationError("Please provide an email address")
        user = db.query(User).filter(User.email == email.strip()).first()
        if not user:
            raise NotFoundError("There is no user with that email address.")

        token = self.reset_tokens.issue(db, user)
        reset_url = f"{self.public_base_url}/reset-password/{token.raw}"
        try:
            self.email.send_password_reset(user.email, reset_url)
        except DeliveryError:
            logger.exception("Reset email to user %s failed, withdrawing token", user.id)
            try:
                self.reset_tokens.revoke(db, user.id, token.hash)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Could not withdraw reset token for user %s", user.id)
            raise

        return token.raw

    def complete_password_reset(
        self, db: Session, raw_token: str, password: str | None, password_confirm: str | None
    ) -> AuthResult:
        """Set a new password using a reset token and log the user in."""
        problem = password_problem(password)
        if problem:
            raise ValidationError(f"Invalid input data. {problem}")
        if password != password_confirm:
            raise PasswordMismatch()

        user = self.reset_tokens.consume(db, raw_token, self.hasher.hash(password))
        logger.info("Password reset completed for user %s", user.id)
        return AuthResult(user=user, token=self.jwt.create_token(user.id))


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
