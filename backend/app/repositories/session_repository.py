"""SQL-backed session store.

Every mutation is a single conditional UPDATE committed right away; callers
inspect the affected-row count instead of reading and then writing.
"""
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.auth import Platform, RefreshSession
from app.services.sessions import ActiveState, SessionInfo, SessionRecord


class SessionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def _first(self, *criteria) -> SessionRecord | None:
        stmt = (
            select(RefreshSession)
            .where(*criteria)
            .execution_options(populate_existing=True)
        )
        row = self._session.execute(stmt).scalar_one_or_none()
        return SessionRecord.from_row(row) if row is not None else None

    def create(
        self,
        *,
        user_id: str,
        platform: Platform,
        state: ActiveState,
        created_at: datetime,
        device_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SessionRecord:
        row = RefreshSession(
            user_id=user_id,
            platform=platform,
            device_id=device_id,
            ip_address=ip_address,
            user_agent=user_agent,
            refresh_token_hash=state.refresh_token_hash,
            refresh_expires_at=state.refresh_expires_at,
            created_at=created_at,
        )
        self._session.add(row)
        self._session.commit()
        self._session.refresh(row)
        return SessionRecord.from_row(row)

    def get_by_id(self, session_id: str) -> SessionRecord | None:
        return self._first(RefreshSession.id == session_id)

    def get_for_user(self, session_id: str, user_id: str) -> SessionRecord | None:
        return self._first(RefreshSession.id == session_id, RefreshSession.user_id == user_id)

    def get_by_refresh_hash(self, refresh_token_hash: str) -> SessionRecord | None:
        return self._first(RefreshSession.refresh_token_hash == refresh_token_hash)

    def get_by_previous_refresh_hash(self, refresh_token_hash: str) -> SessionRecord | None:
        stmt = (
            select(RefreshSession)
            .where(RefreshSession.previous_refresh_token_hash == refresh_token_hash)
            .order_by(RefreshSession.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = self._session.execute(stmt).scalar_one_or_none()
        return SessionRecord.from_row(row) if row is not None else None

    def rotate(
        self,
        *,
        session_id: str,
        expected: ActiveState,
        replacement: ActiveState,
        rotated_at: datetime,
        ip_address: str | None,
        user_agent: str | None,
    ) -> bool:
        """Compare-and-swap the refresh hash; False when another rotation won."""
        stmt = (
            update(RefreshSession)
            .where(
                RefreshSession.id == session_id,
                RefreshSession.refresh_token_hash == expected.refresh_token_hash,
                RefreshSession.revoked_at.is_(None),
            )
            .values(
                refresh_token_hash=replacement.refresh_token_hash,
                previous_refresh_token_hash=expected.refresh_token_hash,
                refresh_expires_at=replacement.refresh_expires_at,
                last_rotated_at=rotated_at,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.commit()
        return int(result.rowcount or 0) == 1

    def revoke(self, session_id: str, at: datetime, *, user_id: str | None = None) -> bool:
        criteria = [RefreshSession.id == session_id, RefreshSession.revoked_at.is_(None)]
        if user_id is not None:
            criteria.append(RefreshSession.user_id == user_id)
        stmt = (
            update(RefreshSession)
            .where(*criteria)
            .values(revoked_at=at)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.commit()
        return int(result.rowcount or 0) == 1

    def revoke_all_for_user(self, user_id: str, at: datetime, *, burn_refresh_tokens: bool = False) -> int:
        """Revoke every live session of a user.

        With ``burn_refresh_tokens`` the refresh hashes of the sessions revoked
        by this call are cleared as well, so none of their secrets resolve
        again. Sessions revoked earlier keep their hashes.
        """
        stmt = (
            update(RefreshSession)
            .where(RefreshSession.user_id == user_id, RefreshSession.revoked_at.is_(None))
            .values(revoked_at=at)
            .execution_options(synchronize_session=False)
        )
        revoked = int(self._session.execute(stmt).rowcount or 0)
        if burn_refresh_tokens:
            burn = (
                update(RefreshSession)
                .where(RefreshSession.user_id == user_id, RefreshSession.revoked_at == at)
                .values(refresh_token_hash=None, previous_refresh_token_hash=None)
                .execution_options(synchronize_session=False)
            )
            self._session.execute(burn)
        self._session.commit()
        return revoked

    def list_active(self, user_id: str, now: datetime) -> list[SessionInfo]:
        stmt = (
            select(RefreshSession)
            .where(
                RefreshSession.user_id == user_id,
                RefreshSession.revoked_at.is_(None),
                RefreshSession.refresh_expires_at > now,
            )
            .order_by(RefreshSession.created_at.desc())
            .execution_options(populate_existing=True)
        )
        rows = self._session.execute(stmt).scalars().all()
        return [SessionRecord.from_row(row).to_info() for row in rows]
