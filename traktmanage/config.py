"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="trakt-manage", alias="APP_NAME")

    trakt_api_url: HttpUrl = Field(
        default="https://api.trakt.tv", alias="TRAKT_API_URL"
    )
    trakt_authorize_url: HttpUrl = Field(
        default="https://trakt.tv/oauth/authorize", alias="TRAKT_AUTHORIZE_URL"
    )
    trakt_redirect_uri: str = Field(
        default=OOB_REDIRECT_URI, alias="TRAKT_REDIRECT_URI"
    )
    trakt_page_size: int = Field(
        default=100, alias="TRAKT_PAGE_SIZE", ge=1, le=1_000
    )
    trakt_max_retries: int = Field(
        default=2, alias="TRAKT_MAX_RETRIES", ge=0, le=10
    )
    trakt_retry_backoff_seconds: float = Field(
        default=1.0, alias="TRAKT_RETRY_BACKOFF", ge=0
    )
    request_timeout_seconds: float = Field(
        default=20.0, alias="REQUEST_TIMEOUT", gt=0
    )
    token_refresh_margin_seconds: int = Field(
        default=300, alias="TOKEN_REFRESH_MARGIN", ge=0
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./trakt.db", alias="DATABASE_URL"
    )
    db_file_name: str | None = Field(default=None, alias="DB_FILE_NAME")

    log_level: LogLevel = Field(default="WARNING", alias="LOG_LEVEL")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _resolve_database_file(self) -> "Settings":
        """Point the cache at ``DB_FILE_NAME`` unless a full URL was given."""

        if self.db_file_name and "database_url" not in self.model_fields_set:
            self.database_url = f"sqlite+aiosqlite:///{self.db_file_name}"
        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
