"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``SCENARIODB_API_`` (e.g. ``SCENARIODB_API_PORT=9000``) or through a
    ``.env`` file in the working directory.  Build settings themselves come
    from :class:`scenario_engine.config.Settings`.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCENARIODB_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    host: str = "127.0.0.1"
    port: int = 8787
    debug: bool = False

    # Structured JSON logging for log aggregators.
    structured_logging: bool = False

    # Session driver of the application served next to this endpoint.  Browser
    # tests that expect a different one are refused.
    session_driver: str | None = None

    @field_validator("session_driver", mode="before")
    @classmethod
    def blank_is_none(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
