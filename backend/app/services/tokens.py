"""Access-token signing and refresh-secret handling."""
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import hashlib
import hmac
import secrets
import uuid

from jose import JWTError, jwt

from app.errors import UnauthorizedError

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


def generate_refresh_token() -> str:
    """Generate an opaque, URL-safe refresh secret."""
    return secrets.token_urlsafe(48)


class RefreshTokenHasher:
    """Keyed one-way hash for refresh secrets (HMAC-SHA256 with a server pepper)."""

    def __init__(self, pepper: str) -> None:
        if not pepper:
            raise ValueError("Refresh token pepper must not be empty")
        self._pepper = pepper.encode("utf-8")

    def hash(self, refresh_token: str) -> str:
        return hmac.new(self._pepper, refresh_token.encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, refresh_token: str, stored_hash: str | None) -> bool:
        if not stored_hash:
            return False
        return hmac.compare_digest(self.hash(refresh_token), stored_hash)


@dataclass(frozen=True)
class AccessTokenClaims:
    """Claims carried by an access token.

    Serialized with the wire names ``userId``, ``email``, ``rol``, ``sid``,
    ``aud``, ``iat`` and ``jti``.
    """

    user_id: str
    email: str
    rol: str
    aud: str
    sid: str | None = None
    iat: int | None = None
    jti: str | None = field(default=None, compare=False)

    def to_payload(self) -> dict:
        payload = {
            "userId": self.user_id,
            "sub": self.user_id,
            "email": self.email,
            "rol": self.rol,
            "aud": self.aud,
        }
        if self.sid is not None:
            payload["sid"] = self.sid
        if self.iat is not None:
            payload["iat"] = self.iat
        if self.jti is not None:
            payload["jti"] = self.jti
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "AccessTokenClaims":
        user_id = payload.get("userId") or payload.get("sub")
        aud = payload.get("aud")
        if isinstance(aud, list):
            aud = aud[0] if len(aud) == 1 else None
        if not user_id or not aud or payload.get("type") != "access":
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE)
        iat = payload.get("iat")
        return cls(
            user_id=str(user_id),
            email=str(payload.get("email") or ""),
            rol=str(payload.get("rol") or ""),
            aud=str(aud),
            sid=payload.get("sid"),
            iat=int(iat) if iat is not None else None,
            jti=payload.get("jti"),
        )


class AccessTokenCodec:
    """Signs and verifies access tokens with python-jose.

    Issuer, audience and expiry are enforced here; any failure surfaces as a
    single generic UnauthorizedError so signature and expiry problems are not
    distinguishable by the caller.
    """

    allowed_audiences = ("web", "mobile")

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: str = "gestionguias-api",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._issuer = issuer
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sign(self, claims: AccessTokenClaims, ttl: timedelta) -> str:
        issued_at = claims.iat if claims.iat is not None else int(self._clock().timestamp())
        to_encode = claims.to_payload()
        to_encode.update(
            {
                "iat": issued_at,
                "exp": issued_at + int(ttl.total_seconds()),
                "iss": self._issuer,
                "jti": claims.jti or str(uuid.uuid4()),
                "type": "access",
            }
        )
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str, audience: str | None = None) -> AccessTokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                audience=audience,
                issuer=self._issuer,
                options={"verify_aud": audience is not None},
            )
        except JWTError:
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE)

        claims = AccessTokenClaims.from_payload(payload)
        if claims.aud not in self.allowed_audiences:
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE)
        return claims
