"""Authentication API endpoints."""
from fastapi import APIRouter, Body, Depends, Request, Response, status

from app.api.deps import (
    get_auth_service,
    get_client_platform,
    get_current_user,
    require_session,
)
from app.config import get_settings
from app.errors import BadRequestError
from app.models.auth import Platform
from app.models.user import User
from app.schemas.auth import (
    ChangePassword,
    LoginResponse,
    MessageResponse,
    RefreshResponse,
    SessionListResponse,
    SessionResponse,
    SessionSummary,
    TokenPair,
    TokenRefresh,
    UserLogin,
    UserRegister,
    UserResponse,
)
from app.services.auth_service import AuthService
from app.services.tokens import AccessTokenClaims

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    """Issue secure HttpOnly refresh-token cookie scoped to the refresh endpoint."""
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite=settings.refresh_cookie_samesite,
        path=settings.refresh_cookie_path,
        max_age=settings.refresh_token_ttl_seconds,
    )


def clear_refresh_cookie(response: Response) -> None:
    """Clear refresh-token cookie."""
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        secure=settings.refresh_cookie_secure,
        httponly=True,
        samesite=settings.refresh_cookie_samesite,
    )


def get_request_ip(request: Request) -> str | None:
    """Extract best-effort client IP for session metadata."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserRegister, service: AuthService = Depends(get_auth_service)):
    """Register a new user."""
    return service.register(
        user_data.email,
        user_data.password,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role=user_data.role,
    )


@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
def login(
    user_data: UserLogin,
    request: Request,
    response: Response,
    platform: Platform = Depends(get_client_platform),
    service: AuthService = Depends(get_auth_service),
):
    """Login and get tokens."""
    result = service.login(
        user_data.email,
        user_data.password,
        platform,
        device_id=user_data.device_id,
        ip=get_request_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    refresh_in_body: str | None = result.refresh_token
    if platform == Platform.WEB:
        set_refresh_cookie(response, result.refresh_token)
        refresh_in_body = None

    return LoginResponse(
        user=UserResponse.model_validate(result.user),
        tokens=TokenPair(
            access_token=result.access_token,
            access_token_expires_in=result.access_token_expires_in,
            refresh_token=refresh_in_body,
            refresh_token_expires_at=result.refresh_expires_at,
        ),
        session=SessionSummary(
            id=result.session.id,
            platform=result.session.platform,
            created_at=result.session.created_at,
        ),
    )


@router.post("/refresh", response_model=RefreshResponse, response_model_exclude_none=True)
def refresh_tokens(
    request: Request,
    response: Response,
    body: TokenRefresh | None = Body(default=None),
    platform: Platform = Depends(get_client_platform),
    service: AuthService = Depends(get_auth_service),
):
    """Rotate the refresh token and issue a new access token."""
    if platform == Platform.WEB:
        refresh_token = request.cookies.get(settings.refresh_cookie_name) or (body.refresh_token if body else None)
        if not refresh_token:
            raise BadRequestError("Refresh token cookie not found")
    else:
        refresh_token = body.refresh_token if body else None
        if not refresh_token:
            raise BadRequestError("Refresh token is required in request body for mobile")

    result = service.refresh(
        refresh_token,
        platform,
        ip=get_request_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    refresh_in_body: str | None = result.refresh_token
    if platform == Platform.WEB:
        set_refresh_cookie(response, result.refresh_token)
        refresh_in_body = None

    return RefreshResponse(
        tokens=TokenPair(
            access_token=result.access_token,
            access_token_expires_in=result.access_token_expires_in,
            refresh_token=refresh_in_body,
            refresh_token_expires_at=result.refresh_expires_at,
        ),
        session=SessionSummary(id=result.session_id, platform=platform),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    response: Response,
    claims: AccessTokenClaims = Depends(require_session),
    platform: Platform = Depends(get_client_platform),
    service: AuthService = Depends(get_auth_service),
):
    """Revoke the session the access token belongs to."""
    if not claims.sid:
        raise BadRequestError("Session ID not found in token")
    service.logout(claims.sid)
    if platform == Platform.WEB:
        clear_refresh_cookie(response)


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
def logout_all(
    response: Response,
    claims: AccessTokenClaims = Depends(require_session),
    platform: Platform = Depends(get_client_platform),
    service: AuthService = Depends(get_auth_service),
):
    """Revoke every session of the current user."""
    service.logout_all(claims.user_id)
    if platform == Platform.WEB:
        clear_refresh_cookie(response)


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    """Profile of the authenticated user."""
    return current_user


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    data: ChangePassword,
    response: Response,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """Change password and terminate every session."""
    service.change_password(current_user.id, data.current_password, data.new_password)
    clear_refresh_cookie(response)
    return MessageResponse(message="Password changed; all sessions have been terminated")


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """Active sessions of the current user, newest first."""
    sessions = service.list_sessions(current_user.id)
    return SessionListResponse(sessions=[SessionResponse.model_validate(s) for s in sessions])


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """Revoke one of the current user's sessions."""
    service.revoke_session(session_id, current_user.id)
