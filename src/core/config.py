"""Application configuration using Pydantic Settings."""

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

# Hosted Postgres providers hand out driverless URLs.
_ASYNC_DRIVER_PREFIXES = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
}


class Settings(BaseSettings):
    """Portal settings loaded from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    database_url: str
    """Database URL; plain postgres URLs are switched to the asyncpg driver."""

    sentry_dsn: str | None = None

    environment: str = "development"
    """development, staging or production."""

    debug: bool = False

    log_format: str | None = None
    """``json`` or ``console``; unset picks by environment."""

    timezone: str = "America/Sao_Paulo"
    """IANA timezone that decides what "today" is for contracts and renewals."""

    min_billed_hours: int = Field(default=1, ge=1)
    expiring_horizon_days: int = Field(default=7, ge=0)

    scheduler_api_key: str | None = None
    """Shared secret the scheduler sends as ``X-Scheduler-Key``."""

    cors_origins: Annotated[list[str], NoDecode] = DEFAULT_CORS_ORIGINS

    @field_validator("database_url")
    @classmethod
    def use_async_driver(cls, value: str) -> str:
        for prefix, replacement in _ASYNC_DRIVER_PREFIXES.items():
            if value.startswith(prefix):
                return replacement + value[len(prefix):]
        return value

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"TIMEZONE {value!r} is not a known IANA zone") from exc
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> list[str]:
        """Accept a JSON array, a comma-separated string or a list."""
        if isinstance(value, (list, tuple, set)):
            return _normalize_origins(value)
        if not isinstance(value, str):
            raise ValueError("CORS_ORIGINS must be a string or a list.")

        text = value.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError("CORS_ORIGINS is not a valid JSON array.") from exc
            return _normalize_origins(decoded)
        if text.startswith("{"):
            raise ValueError(
                "CORS_ORIGINS must be a JSON array or comma-separated string."
            )
        return _normalize_origins(text.split(","))


def _normalize_origins(values: Iterable[object]) -> list[str]:
    """Strip quotes and trailing slashes, dropping blanks and repeats."""
    origins: list[str] = []
    for raw in values:
        origin = str(raw).strip().strip("'\"").rstrip("/")
        if origin and origin not in origins:
            origins.append(origin)
    return origins or DEFAULT_CORS_ORIGINS.copy()


try:
    settings = Settings()
except Exception as exc:
    env_file = Path(".env")
    location = env_file.resolve() if env_file.exists() else ".env"
    raise RuntimeError(
        f"Failed to load portal settings (checked environment and {location}).\n"
        f"Error: {exc}\n"
        "DATABASE_URL is required. MIN_BILLED_HOURS must be >= 1, "
        "EXPIRING_HORIZON_DAYS >= 0 and TIMEZONE a valid IANA zone.\n"
        'CORS_ORIGINS takes ["https://a.example","https://b.example"] '
        "or https://a.example,https://b.example"
    ) from exc
