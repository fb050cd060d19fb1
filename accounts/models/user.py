"""User model."""

import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String

from accounts.database import Base, utcnow


class Role(str, enum.Enum):
    """Roles understood by the access control gate."""

    USER = "user"
    ADMIN = "admin"


class User(Base):
    """Registered account."""

    __tablename__ = "user"
    __table_args__ = (
        # A pending reset token always carries its expiry, and vice versa.
        CheckConstraint(
            "(password_reset_token_hash IS NULL) = (password_reset_expires_at IS NULL)",
            name="ck_user_reset_token_pair",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    email = Column(String(256), unique=True, nullable=False, index=True)
    photo = Column(String(256), nullable=False, default="default.jpg")
    role = Column(String(16), nullable=False, default=Role.USER.value)
    password_hash = Column(String(256), nullable=False)
    password_changed_at = Column(DateTime, nullable=True)
    password_reset_token_hash = Column(String(64), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    registered_date = Column(DateTime, nullable=False, default=utcnow)
    expiry_date = Column(DateTime, nullable=False)

    def has_expired(self, now=None) -> bool:
        """True once the account validity window has passed."""
        return (now or utcnow()) > self.expiry_date

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"
