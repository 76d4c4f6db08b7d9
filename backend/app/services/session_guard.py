"""Request-time validation of access tokens against live session state."""
from collections.abc import Callable
from datetime import datetime, timezone
import logging

from app.errors import UnauthorizedError
from app.models.auth import Platform
from app.models.user import utcnow
from app.repositories.session_repository import SessionRepository
from app.services.sessions import ActiveState
from app.services.tokens import INVALID_TOKEN_MESSAGE, AccessTokenClaims, AccessTokenCodec

logger = logging.getLogger(__name__)


def _epoch_ms(value: datetime) -> int:
    """Milliseconds since epoch for a naive-UTC or aware datetime."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class SessionGuard:
    """Verifies a bearer token, then cross-checks it with its session row.

    Every rejection surfaces as the same generic UnauthorizedError; the
    specific reason is only logged.
    """

    def __init__(
        self,
        *,
        codec: AccessTokenCodec,
        sessions: SessionRepository,
        skew_seconds: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._codec = codec
        self._sessions = sessions
        self._skew_ms = skew_seconds * 1000
        self._clock = clock

    def _reject(self, reason: str) -> UnauthorizedError:
        logger.info(f"Access token rejected: {reason}")
        return UnauthorizedError(INVALID_TOKEN_MESSAGE)

    def authenticate(self, token: str | None, expected_platform: Platform | None = None) -> AccessTokenClaims:
        if not token:
            raise UnauthorizedError("Missing or invalid authorization header")

        claims = self._codec.verify(token)

        if expected_platform is not None and claims.aud != expected_platform.audience:
            raise self._reject(f"audience {claims.aud!r} does not match {expected_platform.value}")

        if claims.sid:
            self._check_session(claims)

        return claims

    def _check_session(self, claims: AccessTokenClaims) -> None:
        record = self._sessions.get_by_id(claims.sid)
        if record is None:
            raise self._reject(f"session {claims.sid} not found")
        if record.user_id != claims.user_id:
            raise self._reject(f"session {claims.sid} does not belong to user {claims.user_id}")

        state = record.state
        if not isinstance(state, ActiveState):
            raise self._reject(f"session {claims.sid} revoked")
        if state.is_expired(self._clock()):
            raise self._reject(f"session {claims.sid} expired")

        if record.last_rotated_at is not None and claims.iat is not None:
            if claims.iat * 1000 + self._skew_ms < _epoch_ms(record.last_rotated_at):
                raise self._reject(f"token for session {claims.sid} predates the last rotation")
