"""Application configuration management."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_ORIGINS = ["http://localhost", "http://localhost:3000"]


class Settings(BaseSettings):
    """Typed application settings loaded from the environment."""

    db_url: str = Field(default="sqlite+aiosqlite:///./avisos.db", validation_alias="DB_URL")
    jwt_secret: SecretStr = Field(default=SecretStr("CHANGE_ME"), validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expires_min: int = Field(default=480, ge=1, validation_alias="ACCESS_TOKEN_EXPIRES_MIN")
    env: Literal["local", "dev", "prod"] = Field(default="local", validation_alias="ENV")
    cors_origins: list[str] = Field(
        default_factory=lambda: list(_DEFAULT_ORIGINS),
        validation_alias="CORS_ALLOWED_ORIGINS",
    )
    admin_email: str = Field(default="admin@example.com", validation_alias="ADMIN_EMAIL")
    admin_password: SecretStr = Field(default=SecretStr("Admin1234!"), validation_alias="ADMIN_PASSWORD")
    metrics_enabled: bool = Field(default=True, validation_alias="METRICS_ENABLED")
    ws_queue_size: int = Field(default=32, ge=1, validation_alias="WS_QUEUE_SIZE")
    login_rate_limit_attempts: int = Field(default=5, ge=1, validation_alias="LOGIN_RATE_LIMIT_ATTEMPTS")
    login_rate_limit_window_seconds: int = Field(
        default=60, ge=1, validation_alias="LOGIN_RATE_LIMIT_WINDOW_SECONDS"
    )
    login_rate_limit_block_seconds: int = Field(
        default=300, ge=1, validation_alias="LOGIN_RATE_LIMIT_BLOCK_SECONDS"
    )
    git_sha: str | None = Field(default=None, validation_alias="GIT_SHA")
    api_host: str = Field(default="0.0.0.0", validation_alias="AVISOS_API_HOST")
    api_port: int = Field(default=8000, ge=1, le=65535, validation_alias="AVISOS_API_PORT")
    api_reload: bool = Field(default=False, validation_alias="AVISOS_API_RELOAD")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_cors(cls, value: object) -> list[str]:
        if isinstance(value, str):
            origins = [item.strip() for item in value.split(",") if item.strip()]
            return origins or list(_DEFAULT_ORIGINS)
        return value  # type: ignore[return-value]

    @property
    def is_local(self) -> bool:
        return self.env == "local"

    def require_production_secrets(self) -> None:
        if self.is_local:
            return
        if self.jwt_secret.get_secret_value() in {"", "CHANGE_ME"}:
            raise ValueError("JWT_SECRET must be set to a secure value in non-local environments.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    settings = Settings()
    settings.require_production_secrets()
    return settings
