"""Tests for password hashing, session tokens, reset tokens and the bearer-token gate."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from jose import jwt
from sqlalchemy import update
from sqlalchemy.orm import Session

from accounts.database import to_epoch_seconds, utcnow
from accounts.exceptions import (
    ExpiredToken,
    InvalidResetToken,
    InvalidToken,
    NoToken,
    StalePassword,
    TokenUserNotFound,
)
from accounts.models.user import User
from accounts.services.auth import AuthService
from accounts.services.jwt import JWTService
from accounts.services.passwords import PasswordHasher
from accounts.services.reset_tokens import PasswordResetTokenManager, hash_reset_token
from accounts.services.users import UserService


class TestPasswordHasher:
    """Tests for bcrypt password hashing."""

    def test_verify_matching_password(self):
        hasher = PasswordHasher(rounds=4)
        digest = hasher.hash("correct horse")
        assert digest != "correct horse"
        assert hasher.verify("correct horse", digest)

    def test_verify_wrong_password(self):
        hasher = PasswordHasher(rounds=4)
        digest = hasher.hash("correct horse")
        assert not hasher.verify("correct horsf", digest)
        assert not hasher.verify("", digest)

    def test_hashes_are_salted(self):
        hasher = PasswordHasher(rounds=4)
        assert hasher.hash("same-password") != hasher.hash("same-password")

    def test_cost_factor_is_encoded(self):
        assert PasswordHasher(rounds=5).hash("password123").startswith("$2b$05$")

    def test_overlong_password_never_verifies(self):
        hasher = PasswordHasher(rounds=4)
        digest = hasher.hash("a" * 72)
        assert not hasher.verify("a" * 73, digest)

    def test_malformed_digest(self):
        assert not PasswordHasher(rounds=4).verify("password123", "not-a-bcrypt-hash")


class TestJWTService:
    """Tests for session token issue and verification."""

    def test_round_trip(self):
        service = JWTService()
        claims = service.decode_token(service.create_token(42))
        assert claims.subject == "42"
        assert abs(claims.issued_at - to_epoch_seconds(utcnow())) <= 2

    def test_expired_token(self):
        token = JWTService(expire_minutes=-1).create_token(1)
        with pytest.raises(ExpiredToken):
            JWTService().decode_token(token)

    def test_tampered_signature(self):
        service = JWTService()
        forged = jwt.encode(
            {"sub": "1", "iat": utcnow(), "exp": utcnow() + timedelta(minutes=5)},
            "some-other-secret",
            algorithm=service.algorithm,
        )
        with pytest.raises(InvalidToken):
            service.decode_token(forged)

    def test_garbage_token(self):
        with pytest.raises(InvalidToken):
            JWTService().decode_token("invalid.token.here")

    def test_missing_claims(self):
        service = JWTService()
        token = jwt.encode({"exp": utcnow() + timedelta(minutes=5)}, service.secret_key, algorithm=service.algorithm)
        with pytest.raises(InvalidToken):
            service.decode_token(token)


class TestPasswordResetTokenManager:
    """Tests for the one-time reset token lifecycle."""

    def test_generate(self):
        token = PasswordResetTokenManager(expire_minutes=10).generate()
        assert len(token.raw) == 64
        assert token.hash == hash_reset_token(token.raw)
        assert token.hash != token.raw
        remaining = token.expires_at - utcnow()
        assert timedelta(minutes=9) < remaining <= timedelta(minutes=10)

    def test_issue_stores_only_hash(self, db_session: Session, test_user: dict):
        user = db_session.get(User, test_user["user_id"])
        token = PasswordResetTokenManager().issue(db_session, user)
        assert user.password_reset_token_hash == hash_reset_token(token.raw)
        assert user.password_reset_token_hash != token.raw
        assert user.password_reset_expires_at == token.expires_at

    def test_resolve_within_window(self, db_session: Session, test_user: dict):
        manager = PasswordResetTokenManager()
        user = db_session.get(User, test_user["user_id"])
        token = manager.issue(db_session, user)
        assert manager.resolve(db_session, token.raw).id == user.id

    def test_resolve_wrong_secret(self, db_session: Session, test_user: dict):
        manager = PasswordResetTokenManager()
        manager.issue(db_session, db_session.get(User, test_user["user_id"]))
        with pytest.raises(InvalidResetToken):
            manager.resolve(db_session, "0" * 64)

    def test_resolve_after_expiry(self, db_session: Session, test_user: dict):
        manager = PasswordResetTokenManager()
        user = db_session.get(User, test_user["user_id"])
        token = manager.issue(db_session, user)
        user.password_reset_expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        # Hash still matches, but the window has closed.
        assert user.password_reset_token_hash == token.hash
        with pytest.raises(InvalidResetToken):
            manager.resolve(db_session, token.raw)

    def test_consume_is_single_use(self, db_session: Session, test_user: dict):
        manager = PasswordResetTokenManager()
        hasher = PasswordHasher(rounds=4)
        user = db_session.get(User, test_user["user_id"])
        token = manager.issue(db_session, user)

        updated = manager.consume(db_session, token.raw, hasher.hash("brand-new-pass"))
        assert updated.id == user.id
        assert hasher.verify("brand-new-pass", updated.password_hash)
        assert updated.password_reset_token_hash is None
        assert updated.password_reset_expires_at is None
        assert updated.password_changed_at is not None

        with pytest.raises(InvalidResetToken):
            manager.resolve(db_session, token.raw)
        with pytest.raises(InvalidResetToken):
            manager.consume(db_session, token.raw, hasher.hash("another-pass"))

    def test_consume_loses_race_after_resolve(self, db_session: Session, test_user: dict):
        """The token is spent elsewhere between lookup and update; nothing may change."""
        manager = PasswordResetTokenManager()
        user = db_session.get(User, test_user["user_id"])
        token = manager.issue(db_session, user)
        old_password_hash = user.password_hash
        lookup = manager.resolve

        def resolve_then_spend(db, raw):
            found = lookup(db, raw)
            db.execute(
                update(User)
                .where(User.id == found.id)
                .values(password_reset_token_hash=None, password_reset_expires_at=None)
                .execution_options(synchronize_session=False)
            )
            return found

        with patch.object(manager, "resolve", side_effect=resolve_then_spend), patch.object(
            db_session, "commit", wraps=db_session.commit
        ) as commit:
            with pytest.raises(InvalidResetToken):
                manager.consume(db_session, token.raw, PasswordHasher(rounds=4).hash("brand-new-pass"))
            commit.assert_not_called()

        db_session.expire_all()
        user = db_session.get(User, test_user["user_id"])
        assert user.password_hash == old_password_hash
        assert user.password_reset_token_hash == token.hash

    def test_consume_window_closes_after_resolve(self, db_session: Session, test_user: dict):
        manager = PasswordResetTokenManager()
        user = db_session.get(User, test_user["user_id"])
        token = manager.issue(db_session, user)
        old_password_hash = user.password_hash
        lookup = manager.resolve

        def resolve_then_expire(db, raw):
            found = lookup(db, raw)
            db.execute(
                update(User)
                .where(User.id == found.id)
                .values(password_reset_expires_at=utcnow() - timedelta(seconds=1))
                .execution_options(synchronize_session=False)
            )
            return found

        with patch.object(manager, "resolve", side_effect=resolve_then_expire):
            with pytest.raises(InvalidResetToken):
                manager.consume(db_session, token.raw, PasswordHasher(rounds=4).hash("brand-new-pass"))

        db_session.expire_all()
        assert db_session.get(User, test_user["user_id"]).password_hash == old_password_hash

    def test_reissue_replaces_pending_token(self, db_session: Session, test_user: dict):
        manager = PasswordResetTokenManager()
        user = db_session.get(User, test_user["user_id"])
        first = manager.issue(db_session, user)
        second = manager.issue(db_session, user)
        with pytest.raises(InvalidResetToken):
            manager.resolve(db_session, first.raw)
        assert manager.resolve(db_session, second.raw).id == user.id

    def test_revoke_only_clears_matching_token(self, db_session: Session, test_user: dict):
        manager = PasswordResetTokenManager()
        user = db_session.get(User, test_user["user_id"])
        stale = manager.issue(db_session, user)
        current = manager.issue(db_session, user)

        assert not manager.revoke(db_session, user.id, stale.hash)
        assert manager.resolve(db_session, current.raw).id == user.id

        assert manager.revoke(db_session, user.id, current.hash)
        db_session.expire_all()
        user = db_session.get(User, test_user["user_id"])
        assert user.password_reset_token_hash is None
        assert user.password_reset_expires_at is None


class TestAccessGate:
    """Tests for bearer-token authentication."""

    def test_valid_token(self, db_session: Session, test_user: dict):
        user = AuthService().authenticate(db_session, f"Bearer {test_user['token']}")
        assert user.id == test_user["user_id"]

    @pytest.mark.parametrize("header", [None, "", "Bearer ", "Basic dXNlcjpwYXNz", "abc"])
    def test_missing_bearer(self, db_session: Session, header):
        with pytest.raises(NoToken):
            AuthService().authenticate(db_session, header)

    def test_invalid_token(self, db_session: Session):
        with pytest.raises(InvalidToken):
            AuthService().authenticate(db_session, "Bearer invalid.token.here")

    def test_expired_token(self, db_session: Session, test_user: dict):
        token = JWTService(expire_minutes=-1).create_token(test_user["user_id"])
        with pytest.raises(ExpiredToken):
            AuthService().authenticate(db_session, f"Bearer {token}")

    def test_deleted_user(self, db_session: Session, test_user: dict):
        db_session.delete(db_session.get(User, test_user["user_id"]))
        db_session.commit()
        with pytest.raises(TokenUserNotFound):
            AuthService().authenticate(db_session, f"Bearer {test_user['token']}")

    def test_non_numeric_subject(self, db_session: Session):
        token = JWTService().create_token("not-a-number")  # type: ignore[arg-type]
        with pytest.raises(InvalidToken):
            AuthService().authenticate(db_session, f"Bearer {token}")

    def test_password_change_invalidates_older_tokens(self, db_session: Session, test_user: dict):
        user = db_session.get(User, test_user["user_id"])
        user.password_changed_at = utcnow() + timedelta(seconds=5)
        db_session.commit()
        with pytest.raises(StalePassword):
            AuthService().authenticate(db_session, f"Bearer {test_user['token']}")

    def test_change_within_same_second_invalidates_token(self, db_session: Session):
        user_service = UserService()
        user = user_service.create_user(
            db_session,
            first_name="Same",
            last_name="Second",
            email="same-second@example.com",
            password="password123",
            password_confirm="password123",
        )
        token = JWTService().create_token(user.id)
        user.password_changed_at = utcnow()
        db_session.commit()
        with pytest.raises(StalePassword):
            AuthService().authenticate(db_session, f"Bearer {token}")

    def test_token_issued_after_change_is_accepted(self, db_session: Session, test_user: dict):
        user = db_session.get(User, test_user["user_id"])
        user.password_changed_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        token = JWTService().create_token(user.id)
        assert AuthService().authenticate(db_session, f"Bearer {token}").id == user.id
