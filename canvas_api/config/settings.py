"""Environment-driven client settings. Nothing is read at import time."""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_RATE_LIMIT_INTERVAL_MS


class Settings(BaseSettings):
    """`CANVAS_API_*` variables, from the process environment or a .env file.

    `CanvasApi.from_settings()` turns these into constructor arguments.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Canvas instance ===
    canvas_api_url: str | None = None
    canvas_api_token: str | None = None

    # === Requests ===
    canvas_api_timeout_ms: Annotated[int, Field(gt=0)] | None = None

    # === Throttling ===
    canvas_api_rate_limit_interval_ms: Annotated[int, Field(gt=0)] = (
        DEFAULT_RATE_LIMIT_INTERVAL_MS
    )
    canvas_api_disable_throttling: bool = Field(
        default=False, description="Bypass the shared rate-limited dispatcher"
    )

    # === Diagnostics ===
    canvas_api_debug: bool = Field(default=False, description="Emit dispatcher diagnostics")

    @field_validator("canvas_api_url", "canvas_api_token")
    @classmethod
    def blank_is_unset(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


@lru_cache
def get_settings() -> Settings:
    """Settings parsed once per process; call `get_settings.cache_clear()` to re-read."""
    return Settings()
