"""Authentication schemas."""
from datetime import datetime
import re

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.auth import Platform
from app.models.user import Role
from app.services.passwords import MAX_PASSWORD_BYTES

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]")


def check_password_policy(value: str) -> str:
    """Enforce length and character-class rules for new passwords."""
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError("Password too long")
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return value


class UserRegister(BaseModel):
    """User registration request."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_BYTES)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Role = Role.GUIA

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_policy(value)


class UserLogin(BaseModel):
    """User login request."""

    email: EmailStr
    password: str
    device_id: str | None = Field(default=None, max_length=255)


class TokenRefresh(BaseModel):
    """Token refresh request; web clients send the secret as a cookie instead."""

    refresh_token: str | None = None


class ChangePassword(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_BYTES)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return check_password_policy(value)


class UserResponse(BaseModel):
    """User info response."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TokenPair(BaseModel):
    access_token: str
    access_token_expires_in: int
    token_type: str = "bearer"
    # Omitted for web clients, which receive it as an HttpOnly cookie.
    refresh_token: str | None = None
    refresh_token_expires_at: datetime


class SessionSummary(BaseModel):
    id: str
    platform: Platform
    created_at: datetime | None = None


class LoginResponse(BaseModel):
    user: UserResponse
    tokens: TokenPair
    session: SessionSummary


class RefreshResponse(BaseModel):
    tokens: TokenPair
    session: SessionSummary


class SessionResponse(BaseModel):
    """An active session as listed to its owner."""

    id: str
    platform: Platform
    device_id: str | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    last_rotated_at: datetime | None

    class Config:
        from_attributes = True


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
