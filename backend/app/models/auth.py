"""Authentication/session models."""
import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.user import utcnow


class Platform(str, enum.Enum):
    """Client platform a session is bound to."""

    WEB = "WEB"
    MOBILE = "MOBILE"

    @property
    def audience(self) -> str:
        return self.value.lower()

    @classmethod
    def parse(cls, value: str | None) -> "Platform | None":
        """Normalize a header/audience value such as ``web`` or ``Mobile``."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class RefreshSession(Base):
    """One row per logical session, rotated in place on every refresh."""

    __tablename__ = "sessions"
    __table_args__ = (
        Index("ix_sessions_user_active", "user_id", "revoked_at"),
        Index("ix_sessions_refresh_expires_at", "refresh_expires_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(Enum(Platform, name="client_platform"), nullable=False)
    device_id = Column(String(255))
    ip_address = Column(String(45))
    user_agent = Column(String(255))
    # Null once the session has been burned by reuse detection.
    refresh_token_hash = Column(String(64), unique=True, index=True)
    previous_refresh_token_hash = Column(String(64), index=True)
    refresh_expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime)
    last_rotated_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="sessions")
