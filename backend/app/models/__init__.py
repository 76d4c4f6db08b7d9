"""SQLAlchemy models package."""
from app.models.user import Role, User
from app.models.auth import Platform, RefreshSession

__all__ = [
    "User",
    "Role",
    "RefreshSession",
    "Platform",
]
