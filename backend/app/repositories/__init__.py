"""Persistence repositories."""
from app.repositories.session_repository import SessionRepository
from app.repositories.user_repository import UserRepository

__all__ = ["SessionRepository", "UserRepository"]
