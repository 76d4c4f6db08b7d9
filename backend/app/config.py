"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math

from pydantic import field_validator
from pydantic_settings import BaseSettings


def _check_secret_strength(value: str, env_name: str) -> str:
    """Fail closed if a secret is weak or placeholder quality."""
    if not value:
        raise ValueError(f"{env_name} must be set.")

    if len(value) < 32:
        raise ValueError(f"{env_name} must be at least 32 characters.")

    weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
    lowered = value.lower()
    if lowered in weak_values or "changeme" in lowered or "default_pepper" in lowered:
        raise ValueError(f"{env_name} must not be a placeholder value.")

    counts = Counter(value)
    entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
    estimated_entropy_bits = entropy_per_char * len(value)
    if estimated_entropy_bits < 100:
        raise ValueError(f"{env_name} entropy is too low; use a cryptographically random value.")

    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "GestionGuias Auth"
    debug: bool = False
    log_level: str = "INFO"
    cors_allowed_origins: list[str] = ["http://localhost:3001", "http://localhost:5173"]

    # Database
    database_url: str = "sqlite:///./data/gestionguias.db"

    # Access tokens
    secret_key: str
    algorithm: str = "HS256"
    jwt_issuer: str = "gestionguias-api"
    access_token_expire_minutes: int = 15
    rotation_skew_seconds: int = 3

    # Refresh tokens
    refresh_token_pepper: str
    refresh_token_expire_days: int = 7
    refresh_cookie_name: str = "rt"
    refresh_cookie_path: str = "/api/auth/refresh"
    refresh_cookie_samesite: str = "strict"
    refresh_cookie_secure: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        return _check_secret_strength(value, "SECRET_KEY")

    @field_validator("refresh_token_pepper")
    @classmethod
    def validate_refresh_token_pepper(cls, value: str) -> str:
        return _check_secret_strength(value, "REFRESH_TOKEN_PEPPER")

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
