"""One-time password reset tokens.

Only a SHA-256 digest of each reset secret is stored, next to its expiry. The raw
secret leaves the service once, inside the reset email. A fast digest is enough
here because the secret is 32 random bytes and lives for minutes; login
passwords go through bcrypt instead.

Consumption is a single conditional UPDATE keyed on the digest and the expiry,
so two requests racing with the same secret cannot both change the password.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from accounts.config import get_settings
from accounts.database import utcnow
from accounts.exceptions import InvalidResetToken
from accounts.models.user import User

logger = logging.getLogger("accounts")

RESET_TOKEN_BYTES = 32


@dataclass(frozen=True)
class ResetToken:
    raw: str
    hash: str
    expires_at: datetime


def hash_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class PasswordResetTokenManager:
    """Issues, resolves and consumes password reset secrets."""

    def __init__(self, expire_minutes: int | None = None) -> None:
        settings = get_settings()
        self.expire_minutes = (
            expire_minutes if expire_minutes is not None else settings.PASSWORD_RESET_EXPIRE_MINUTES
        )

    def generate(self) -> ResetToken:
        """Create a fresh secret, its digest and its expiry. Nothing is stored."""
        raw = secrets.token_hex(RESET_TOKEN_BYTES)
        return ResetToken(
            raw=raw,
            hash=hash_reset_token(raw),
            expires_at=utcnow() + timedelta(minutes=self.expire_minutes),
        )

    def issue(self, db: Session, user: User) -> ResetToken:
        """Store a new reset token for the user, replacing any pending one."""
        token = self.generate()
        user.password_reset_token_hash = token.hash
        user.password_reset_expires_at = token.expires_at
        db.commit()
        logger.info("Password reset token issued for user %s (expires %s)", user.id, token.expires_at.isoformat())
        return token

    def revoke(self, db: Session, user_id: int, token_hash: str) -> bool:
        """Clear a pending token, but only if it is still the one identified by token_hash."""
        result = db.execute(
            update(User)
            .where(User.id == user_id, User.password_reset_token_hash == token_hash)
            .values(password_reset_token_hash=None, password_reset_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def resolve(self, db: Session, raw: str) -> User:
        """Find the user holding a live token. Wrong and expired secrets fail the same way."""
        user = (
            db.query(User)
            .filter(
                User.password_reset_token_hash == hash_reset_token(raw),
                User.password_reset_expires_at > utcnow(),
            )
            .first()
        )
        if not user:
            raise InvalidResetToken()
        return user

    def consume(self, db: Session, raw: str, new_password_hash: str) -> User:
        """Spend a token: set the new password hash and clear the token in one conditional UPDATE."""
        token_hash = hash_reset_token(raw)
        user = self.resolve(db, raw)
        user_id = user.id
        now = utcnow()

        result = db.execute(
            update(User)
            .where(
                User.id == user_id,
                User.password_reset_token_hash == token_hash,
                User.password_reset_expires_at > now,
            )
            .values(
                password_hash=new_password_hash,
                password_changed_at=now,
                password_reset_token_hash=None,
                password_reset_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise InvalidResetToken()
        db.commit()

        # expire_on_commit reloads the row with the new values.
        return db.get(User, user_id)
