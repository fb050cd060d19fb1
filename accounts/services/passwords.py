"""Password hashing with bcrypt."""

import bcrypt

from accounts.config import get_settings

# bcrypt only looks at the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8


class PasswordHasher:
    """Salted adaptive hashing for login passwords."""

    def __init__(self, rounds: int | None = None) -> None:
        self.rounds = rounds if rounds is not None else get_settings().BCRYPT_ROUNDS

    def hash(self, password: str) -> str:
        """Hash a plaintext password."""
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Check a plaintext password against a stored bcrypt digest."""
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError:
            # Malformed digest in the store.
            return False


def password_problem(password: str | None) -> str | None:
    """Return a validation message for an unacceptable password, or None if it is fine."""
    if not password:
        return "Please provide a password"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"A user password must have more or equal to {MIN_PASSWORD_LENGTH} characters."
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return f"A user password must be at most {MAX_PASSWORD_BYTES} bytes long."
    return None


_password_hasher: PasswordHasher | None = None


def get_password_hasher() -> PasswordHasher:
    """Get singleton password hasher instance."""
    global _password_hasher
    if _password_hasher is None:
        _password_hasher = PasswordHasher()
    return _password_hasher
