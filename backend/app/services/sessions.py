"""Session domain records and their state machine.

A session is either ``ActiveState`` (it has a current refresh hash and an
expiry) or ``RevokedState`` (terminal). Only the active state can rotate or be
revoked, so un-revoking or rotating a revoked session cannot be expressed.
"""
from dataclasses import dataclass, replace
from datetime import datetime

from app.models.auth import Platform, RefreshSession


@dataclass(frozen=True)
class RevokedState:
    revoked_at: datetime


@dataclass(frozen=True)
class ActiveState:
    refresh_token_hash: str
    refresh_expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.refresh_expires_at < now

    def rotate(self, refresh_token_hash: str, refresh_expires_at: datetime) -> "ActiveState":
        if refresh_expires_at < self.refresh_expires_at:
            raise ValueError("Refresh expiry can only move forward")
        if refresh_token_hash == self.refresh_token_hash:
            raise ValueError("Rotation must replace the refresh token hash")
        return ActiveState(refresh_token_hash=refresh_token_hash, refresh_expires_at=refresh_expires_at)

    def revoke(self, at: datetime) -> RevokedState:
        return RevokedState(revoked_at=at)


SessionState = ActiveState | RevokedState


@dataclass(frozen=True)
class SessionInfo:
    """Public view of a session; never carries refresh hashes."""

    id: str
    platform: Platform
    device_id: str | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    last_rotated_at: datetime | None


@dataclass(frozen=True)
class SessionRecord:
    id: str
    user_id: str
    platform: Platform
    state: SessionState
    device_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    last_rotated_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_revoked(self) -> bool:
        return isinstance(self.state, RevokedState)

    @classmethod
    def from_row(cls, row: RefreshSession) -> "SessionRecord":
        if row.revoked_at is not None:
            state: SessionState = RevokedState(revoked_at=row.revoked_at)
        elif row.refresh_token_hash is None:
            # A burned session always carries revoked_at; treat a stray row as revoked.
            state = RevokedState(revoked_at=row.last_rotated_at or row.created_at)
        else:
            state = ActiveState(
                refresh_token_hash=row.refresh_token_hash,
                refresh_expires_at=row.refresh_expires_at,
            )
        return cls(
            id=row.id,
            user_id=row.user_id,
            platform=Platform(row.platform),
            state=state,
            device_id=row.device_id,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            last_rotated_at=row.last_rotated_at,
            created_at=row.created_at,
        )

    def with_state(self, state: SessionState) -> "SessionRecord":
        return replace(self, state=state)

    def to_info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            platform=self.platform,
            device_id=self.device_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            created_at=self.created_at,
            last_rotated_at=self.last_rotated_at,
        )
