"""Shared FastAPI dependencies."""
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.errors import BadRequestError, UnauthorizedError
from app.models.auth import Platform
from app.models.user import User
from app.repositories.session_repository import SessionRepository
from app.repositories.user_repository import UserRepository
from app.services.auth_service import AuthService
from app.services.passwords import BcryptPasswordHasher
from app.services.session_guard import SessionGuard
from app.services.tokens import AccessTokenClaims, AccessTokenCodec, RefreshTokenHasher

__all__ = [
    "get_db",
    "get_client_platform",
    "get_optional_client_platform",
    "get_auth_service",
    "get_session_guard",
    "require_session",
    "get_current_user",
]

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_token_codec() -> AccessTokenCodec:
    settings = get_settings()
    return AccessTokenCodec(settings.secret_key, algorithm=settings.algorithm, issuer=settings.jwt_issuer)


@lru_cache
def get_refresh_hasher() -> RefreshTokenHasher:
    return RefreshTokenHasher(get_settings().refresh_token_pepper)


@lru_cache
def get_password_hasher() -> BcryptPasswordHasher:
    return BcryptPasswordHasher()


def get_client_platform(
    x_client_platform: str | None = Header(default=None, alias="X-Client-Platform"),
) -> Platform:
    """Require a valid X-Client-Platform header (``web`` or ``mobile``)."""
    if not x_client_platform:
        raise BadRequestError("Missing X-Client-Platform header. Must be 'web' or 'mobile'")
    platform = Platform.parse(x_client_platform)
    if platform is None:
        raise BadRequestError("Invalid X-Client-Platform header. Must be 'web' or 'mobile'")
    return platform


def get_optional_client_platform(
    x_client_platform: str | None = Header(default=None, alias="X-Client-Platform"),
) -> Platform | None:
    """Platform context when the client sent a valid header, otherwise None."""
    return Platform.parse(x_client_platform)


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    settings = get_settings()
    return AuthService(
        sessions=SessionRepository(db),
        users=UserRepository(db),
        codec=get_token_codec(),
        passwords=get_password_hasher(),
        refresh_hasher=get_refresh_hasher(),
        access_token_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
        refresh_token_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
    )


def get_session_guard(db: Session = Depends(get_db)) -> SessionGuard:
    return SessionGuard(
        codec=get_token_codec(),
        sessions=SessionRepository(db),
        skew_seconds=get_settings().rotation_skew_seconds,
    )


def require_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    platform: Platform | None = Depends(get_optional_client_platform),
    guard: SessionGuard = Depends(get_session_guard),
) -> AccessTokenClaims:
    """Validate the bearer access token and attach its claims to the request."""
    token = credentials.credentials if credentials else None
    claims = guard.authenticate(token, platform)
    request.state.auth = claims
    return claims


def get_current_user(
    claims: AccessTokenClaims = Depends(require_session),
    db: Session = Depends(get_db),
) -> User:
    """Get the authenticated, active user."""
    user = UserRepository(db).get_by_id(claims.user_id)
    if user is None or not user.active:
        raise UnauthorizedError("Invalid or expired token")
    return user
