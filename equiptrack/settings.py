from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration for equiptrack.

    Every field can be overridden with an `EQUIPTRACK_` prefixed environment
    variable, e.g. `EQUIPTRACK_LOG_BACKEND=sqlite`.
    """
    model_config = SettingsConfigDict(
        env_prefix="EQUIPTRACK_",
        env_file=".env",
        extra="ignore",
    )

    # Storage
    DATA_DIR: str = ".equiptrack_data"
    LOG_BACKEND: Literal["memory", "file", "sqlite"] = "file"
    SEGMENT_MAX_BYTES: int = Field(default=64 * 1024 * 1024, gt=0)

    # Logging
    LOG_FORMAT: Literal["text", "json"] = "text"
    LOG_LEVEL: str = "INFO"

    # Analytics
    TOP_ITEMS: int = Field(default=5, ge=1)
    DISCREPANCY_WINDOW_DAYS: int = Field(default=30, ge=1)
    RECENT_ACTIVITY_LIMIT: int = Field(default=10, ge=1)

    SEED_ACTOR_ID: str = "system"

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.upper()


settings = Settings()
