"""Password hashing with bcrypt."""
import bcrypt

from app.errors import BadRequestError

MAX_PASSWORD_BYTES = 72


class BcryptPasswordHasher:
    """Hash and verify user passwords."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash_password(self, password: str) -> str:
        """Hash a password."""
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise BadRequestError("Password too long")
        try:
            return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")
        except ValueError:
            raise BadRequestError("Password cannot be hashed")

    def verify_password(self, plain_password: str, hashed_password: str | None) -> bool:
        """Verify a password against its hash."""
        if not hashed_password:
            return False
        try:
            return bcrypt.checkpw(
                plain_password.encode("utf-8"),
                hashed_password.encode("utf-8"),
            )
        except ValueError:
            # Malformed stored hash, or a password bcrypt refuses to process
            return False
