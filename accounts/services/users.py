"""User record management: creation, admin CRUD and self-service profile changes."""

import logging
import random
import re
from datetime import datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from accounts.config import get_settings
from accounts.database import as_naive_utc, utcnow
from accounts.exceptions import ConflictError, NotFoundError, PasswordMismatch, ValidationError
from accounts.models.user import Role, User
from accounts.services.passwords import PasswordHasher, get_password_hasher, password_problem

logger = logging.getLogger("accounts")

PROFILE_FIELDS = {"first_name", "last_name", "email", "photo"}
ADMIN_FIELDS = PROFILE_FIELDS | {"role", "active", "expiry_date"}
REQUIRED_TEXT_FIELDS = ("first_name", "last_name", "email")

SAMPLE_EMAIL_RE = re.compile(r"user(\d+)@user\1\.io")
SAMPLE_PASSWORD = "user1234"


def account_expiry(registered: datetime) -> datetime:
    """An account is valid for one calendar month from registration."""
    return registered + relativedelta(months=1)


class UserService:
    """Handles user records on behalf of admins and of users themselves."""

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        self.hasher = hasher or get_password_hasher()

    def create_user(
        self,
        db: Session,
        first_name: str | None,
        last_name: str | None,
        email: str | None,
        password: str | None,
        password_confirm: str | None,
        photo: str | None = None,
        role: str = Role.USER.value,
        registered_date: datetime | None = None,
    ) -> User:
        """Validate and insert a new user. The password is hashed before the row is written."""
        fields = {
            "first_name": (first_name or "").strip(),
            "last_name": (last_name or "").strip(),
            "email": (email or "").strip(),
        }
        missing = [name for name in REQUIRED_TEXT_FIELDS if not fields[name]]
        if missing:
            raise ValidationError(
                "Invalid input data. " + ". ".join(f"A user must have a {name.replace('_', '-')}" for name in missing)
            )
        problem = password_problem(password)
        if problem:
            raise ValidationError(f"Invalid input data. {problem}")
        if password != password_confirm:
            raise PasswordMismatch()
        role = self._check_role(role)

        if db.query(User).filter(User.email == fields["email"]).first():
            raise self._duplicate_email(fields["email"])

        registered = as_naive_utc(registered_date) if registered_date else utcnow()
        user = User(
            **fields,
            photo=photo or "default.jpg",
            role=role,
            password_hash=self.hasher.hash(password),
            password_changed_at=utcnow(),
            active=True,
            registered_date=registered,
            expiry_date=account_expiry(registered),
        )
        db.add(user)
        self._commit(db, fields["email"])
        db.refresh(user)
        logger.info("Created user %s (%s, role=%s)", user.id, user.email, user.role)
        return user

    def list_users(self, db: Session) -> list[User]:
        """All users, oldest registration first."""
        return db.query(User).order_by(User.registered_date.asc(), User.id.asc()).all()

    def get_by_email(self, db: Session, email: str) -> User:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            raise NotFoundError("No user found with that email!")
        return user

    def update_user(self, db: Session, email: str, changes: dict[str, Any]) -> User:
        """Admin update of any editable field of the user identified by email."""
        user = self.get_by_email(db, email)
        return self._apply_changes(db, user, changes, ADMIN_FIELDS)

    def update_profile(self, db: Session, user: User, changes: dict[str, Any]) -> User:
        """Self-service update. Passwords and roles cannot be changed here."""
        if "password" in changes or "password_confirm" in changes:
            raise ValidationError("This route is not for password updates.")
        return self._apply_changes(db, user, changes, PROFILE_FIELDS)

    def delete_user(self, db: Session, email: str) -> None:
        user = self.get_by_email(db, email)
        db.delete(user)
        db.commit()
        logger.info("Deleted user %s", email)

    def deactivate(self, db: Session, user: User) -> None:
        """Self-service deletion: the record stays, but the account can no longer log in."""
        user.active = False
        db.commit()
        logger.info("User %s deactivated their account", user.id)

    def activate_user(self, db: Session, email: str) -> User:
        user = self.get_by_email(db, email)
        user.active = True
        db.commit()
        db.refresh(user)
        return user

    def renew_user(self, db: Session, email: str) -> User:
        """Extend an expired account. Accounts still inside their window are left alone."""
        user = self.get_by_email(db, email)
        now = utcnow()
        if not user.has_expired(now):
            raise ValidationError("The user is active and valid.")
        user.expiry_date = now + timedelta(days=get_settings().ACCOUNT_RENEWAL_DAYS)
        db.commit()
        db.refresh(user)
        logger.info("Renewed user %s until %s", email, user.expiry_date.isoformat())
        return user

    def create_sample_users(self, db: Session, count: int = 5) -> list[User]:
        """Create numbered test accounts, continuing after the highest number already stored."""
        if count < 1:
            raise ValidationError("count must be at least 1")
        index = self._next_sample_index(db)
        now = utcnow()
        created = []
        for _ in range(count):
            created.append(
                self.create_user(
                    db,
                    first_name=f"User{index}",
                    last_name=f"User{index}",
                    email=f"user{index}@user{index}.io",
                    password=SAMPLE_PASSWORD,
                    password_confirm=SAMPLE_PASSWORD,
                    registered_date=now - timedelta(days=random.randint(0, 59), hours=random.randint(0, 23)),
                )
            )
            index += 1
        return created

    def registered_between_months(
        self, db: Session, start_month: int, end_month: int, year: int | None = None
    ) -> list[User]:
        """Users whose registration falls in months start_month..end_month (inclusive) of year."""
        if not (1 <= start_month <= end_month <= 12):
            raise ValidationError("The parameters are not valid!")
        year = year or utcnow().year
        start = datetime(year, start_month, 1)
        end = datetime(year, end_month, 1) + relativedelta(months=1)
        return (
            db.query(User)
            .filter(User.registered_date >= start, User.registered_date < end)
            .order_by(User.registered_date.asc())
            .all()
        )

    def _apply_changes(self, db: Session, user: User, changes: dict[str, Any], allowed: set[str]) -> User:
        updates = {k: v for k, v in changes.items() if k in allowed}
        for name in REQUIRED_TEXT_FIELDS:
            if name in updates:
                value = (updates[name] or "").strip()
                if not value:
                    raise ValidationError(f"Invalid input data. A user must have a {name.replace('_', '-')}")
                updates[name] = value
        if "role" in updates:
            updates["role"] = self._check_role(updates["role"])
        if "active" in updates and updates["active"] is None:
            raise ValidationError("Invalid input data. active must be true or false")
        if "expiry_date" in updates and updates["expiry_date"] is None:
            raise ValidationError("Invalid input data. expiry_date cannot be empty")
        if "expiry_date" in updates:
            updates["expiry_date"] = as_naive_utc(updates["expiry_date"])

        new_email = updates.get("email")
        if new_email and new_email != user.email:
            if db.query(User).filter(User.email == new_email).first():
                raise self._duplicate_email(new_email)

        for name, value in updates.items():
            setattr(user, name, value)
        self._commit(db, new_email or user.email)
        db.refresh(user)
        return user

    def _next_sample_index(self, db: Session) -> int:
        highest = 0
        for (email,) in db.query(User.email).filter(User.email.like("user%@user%.io")):
            match = SAMPLE_EMAIL_RE.fullmatch(email)
            if match:
                highest = max(highest, int(match.group(1)))
        return highest + 1

    @staticmethod
    def _check_role(role: str) -> str:
        try:
            return Role(role).value
        except ValueError:
            raise ValidationError(f"Invalid input data. Unknown role '{role}'") from None

    @staticmethod
    def _duplicate_email(email: str) -> ConflictError:
        return ConflictError(f"Duplicate field value: {email}. Please use another value!")

    def _commit(self, db: Session, email: str) -> None:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise self._duplicate_email(email) from e


_user_service: UserService | None = None


def get_user_service() -> UserService:
    """Get singleton user service instance."""
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service
