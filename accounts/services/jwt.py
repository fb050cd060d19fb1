"""JWT session token service."""

from dataclasses import dataclass
from datetime import timedelta

from jose import ExpiredSignatureError, JWTError, jwt

from accounts.config import get_settings
from accounts.database import to_epoch_seconds, utcnow
from accounts.exceptions import ExpiredToken, InvalidToken


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token."""

    subject: str
    issued_at: float


class JWTService:
    """Handles JWT token creation and validation."""

    def __init__(self, expire_minutes: int | None = None) -> None:
        settings = get_settings()
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM
        self.expire_minutes = expire_minutes if expire_minutes is not None else settings.JWT_EXPIRE_MINUTES

    def create_token(self, user_id: int) -> str:
        """Create a JWT token for the given user.

        iat keeps its fractional part so it can be ordered against a password
        change made within the same second.
        """
        now = utcnow()
        payload = {
            "sub": str(user_id),
            "iat": to_epoch_seconds(now),
            "exp": now + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> TokenClaims:
        """Decode and validate a JWT token.

        Raises ExpiredToken when the signature is good but the token is past its
        expiry, and InvalidToken for anything else (bad signature, garbage, missing claims).
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredToken() from None
        except JWTError:
            raise InvalidToken() from None

        subject = payload.get("sub")
        issued_at = payload.get("iat")
        if not subject or isinstance(issued_at, bool) or not isinstance(issued_at, (int, float)):
            raise InvalidToken()
        return TokenClaims(subject=subject, issued_at=float(issued_at))


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get singleton JWT service instance."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
