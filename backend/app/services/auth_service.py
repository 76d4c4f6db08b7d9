"""Login, refresh-token rotation with reuse detection, and session revocation."""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging

from app.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from app.models.auth import Platform
from app.models.user import Role, User, utcnow
from app.repositories.session_repository import SessionRepository
from app.repositories.user_repository import UserRepository
from app.services.passwords import BcryptPasswordHasher
from app.services.sessions import ActiveState, SessionInfo, SessionRecord
from app.services.tokens import (
    AccessTokenClaims,
    AccessTokenCodec,
    RefreshTokenHasher,
    generate_refresh_token,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
REUSE_DETECTED = "Token reuse detected. All sessions have been terminated."


@dataclass(frozen=True)
class LoginResult:
    user: User
    access_token: str
    access_token_expires_in: int
    refresh_token: str
    refresh_expires_at: datetime
    session: SessionRecord

    @property
    def session_id(self) -> str:
        return self.session.id


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    access_token_expires_in: int
    refresh_token: str
    refresh_expires_at: datetime
    session_id: str


class AuthService:
    """Stateless orchestration over the session and user stores."""

    def __init__(
        self,
        *,
        sessions: SessionRepository,
        users: UserRepository,
        codec: AccessTokenCodec,
        passwords: BcryptPasswordHasher,
        refresh_hasher: RefreshTokenHasher,
        access_token_ttl: timedelta = timedelta(minutes=15),
        refresh_token_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessions = sessions
        self._users = users
        self._codec = codec
        self._passwords = passwords
        self._refresh_hasher = refresh_hasher
        self._access_ttl = access_token_ttl
        self._refresh_ttl = refresh_token_ttl
        self._clock = clock

    @property
    def access_token_expires_in(self) -> int:
        return int(self._access_ttl.total_seconds())

    def _issue_access_token(self, user: User, session_id: str, platform: Platform) -> str:
        claims = AccessTokenClaims(
            user_id=user.id,
            email=user.email,
            rol=user.role.value if user.role is not None else "",
            sid=session_id,
            aud=platform.audience,
        )
        return self._codec.sign(claims, self._access_ttl)

    def _new_refresh_state(self, now: datetime) -> tuple[str, ActiveState]:
        refresh_token = generate_refresh_token()
        state = ActiveState(
            refresh_token_hash=self._refresh_hasher.hash(refresh_token),
            refresh_expires_at=now + self._refresh_ttl,
        )
        return refresh_token, state

    def _revoke_for_reuse(self, record: SessionRecord, reason: str) -> ConflictError:
        # Must complete before the error reaches the caller; store failures propagate.
        revoked = self._sessions.revoke_all_for_user(
            record.user_id, self._clock(), burn_refresh_tokens=True
        )
        logger.warning(
            f"Refresh token reuse detected ({reason}) for user {record.user_id} "
            f"session {record.id}; revoked {revoked} session(s)"
        )
        return ConflictError(REUSE_DETECTED)

    def login(
        self,
        email: str,
        password: str,
        platform: Platform,
        *,
        device_id: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        if platform == Platform.MOBILE and not device_id:
            raise BadRequestError("deviceId is required for mobile platform")

        user = self._users.get_by_email(email)
        if user is None or not user.active:
            logger.info(f"Login rejected for {email!r}: unknown or inactive user")
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not self._passwords.verify_password(password, user.password_hash):
            logger.info(f"Login rejected for user {user.id}: bad password")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        now = self._clock()
        refresh_token, state = self._new_refresh_state(now)
        session = self._sessions.create(
            user_id=user.id,
            platform=platform,
            state=state,
            created_at=now,
            device_id=device_id,
            ip_address=ip,
            user_agent=user_agent,
        )
        access_token = self._issue_access_token(user, session.id, platform)
        logger.info(f"User {user.id} logged in on {platform.value} (session {session.id})")

        return LoginResult(
            user=user,
            access_token=access_token,
            access_token_expires_in=self.access_token_expires_in,
            refresh_token=refresh_token,
            refresh_expires_at=state.refresh_expires_at,
            session=session,
        )

    def refresh(
        self,
        refresh_token: str,
        platform: Platform,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshResult:
        presented_hash = self._refresh_hasher.hash(refresh_token)

        record = self._sessions.get_by_refresh_hash(presented_hash)
        if record is None:
            superseded = self._sessions.get_by_previous_refresh_hash(presented_hash)
            if superseded is not None:
                raise self._revoke_for_reuse(superseded, "superseded secret")
            logger.info(f"Refresh token not found (hash {presented_hash[:12]}...)")
            raise UnauthorizedError("Invalid refresh token")

        if record.is_revoked:
            raise self._revoke_for_reuse(record, "revoked session")

        current = record.state
        now = self._clock()
        if current.is_expired(now):
            raise UnauthorizedError("Refresh token expired")

        user = self._users.get_by_id(record.user_id)
        if user is None or not user.active:
            raise UnauthorizedError("User account is inactive")

        if record.platform != platform:
            logger.info(
                f"Refresh for session {record.id} rejected: bound to {record.platform.value}, "
                f"presented as {platform.value}"
            )
            raise UnauthorizedError("Platform mismatch")

        new_refresh_token, candidate = self._new_refresh_state(now)
        replacement = current.rotate(candidate.refresh_token_hash, candidate.refresh_expires_at)
        swapped = self._sessions.rotate(
            session_id=record.id,
            expected=current,
            replacement=replacement,
            rotated_at=now,
            ip_address=ip,
            user_agent=user_agent,
        )
        if not swapped:
            raise self._revoke_for_reuse(record, "lost rotation race")

        access_token = self._issue_access_token(user, record.id, record.platform)
        logger.info(f"Rotated refresh token for user {user.id} session {record.id}")

        return RefreshResult(
            access_token=access_token,
            access_token_expires_in=self.access_token_expires_in,
            refresh_token=new_refresh_token,
            refresh_expires_at=replacement.refresh_expires_at,
            session_id=record.id,
        )

    def logout(self, session_id: str) -> None:
        if self._sessions.revoke(session_id, self._clock()):
            logger.info(f"Session {session_id} logged out")

    def logout_all(self, user_id: str) -> int:
        revoked = self._sessions.revoke_all_for_user(user_id, self._clock())
        logger.info(f"Revoked {revoked} session(s) for user {user_id}")
        return revoked

    def list_sessions(self, user_id: str) -> list[SessionInfo]:
        return self._sessions.list_active(user_id, self._clock())

    def revoke_session(self, session_id: str, user_id: str) -> None:
        record = self._sessions.get_for_user(session_id, user_id)
        if record is None:
            raise NotFoundError("Session not found")
        if record.is_revoked:
            raise BadRequestError("Session already revoked")
        if not self._sessions.revoke(session_id, self._clock(), user_id=user_id):
            # Revoked concurrently between the read and the update
            raise BadRequestError("Session already revoked")
        logger.info(f"Session {session_id} revoked by user {user_id}")

    def register(
        self,
        email: str,
        password: str,
        *,
        first_name: str = "",
        last_name: str = "",
        role: Role | None = None,
    ) -> User:
        if self._users.get_by_email(email) is not None:
            raise ConflictError("User with this email already exists")
        user = User(
            email=email,
            password_hash=self._passwords.hash_password(password),
            first_name=first_name,
            last_name=last_name,
            active=True,
        )
        if role is not None:
            user.role = role
        user = self._users.add(user)
        logger.info(f"Registered user {user.id} with role {user.role.value}")
        return user

    def get_profile(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.active:
            raise UnauthorizedError("User account is inactive")
        if not self._passwords.verify_password(current_password, user.password_hash):
            raise UnauthorizedError("Invalid current password")
        if self._passwords.verify_password(new_password, user.password_hash):
            raise BadRequestError("New password must be different from current password")

        self._users.update_password_hash(user_id, self._passwords.hash_password(new_password))
        self.logout_all(user_id)
        logger.info(f"Password changed for user {user_id}")
