"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        STORE_PATH: SQLite database file backing the durable store
        STORE_COLLECTION: Table holding one blob per (schema, size)
        RPC_TIMEOUT_SECONDS: Evict unanswered requests after this many seconds
        SEQUENCED_WRITES: Re-hydrate only after the persist has completed
        DEFAULT_DATASET_SIZE: Dataset size used when none is given
        LOG_LEVEL: Logging level
        LOG_FILE: JSON-lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Durable store
    STORE_PATH: Path = Field(
        default=Path(".cache/gridcache.db"), description="SQLite database path"
    )
    STORE_COLLECTION: str = Field(
        default="ObjectStore", description="Collection (table) name in the store"
    )

    # Transport
    RPC_TIMEOUT_SECONDS: float | None = Field(
        default=None,
        gt=0.0,
        description="Evict pending requests after this many seconds (None = never)",
    )

    # Cache
    SEQUENCED_WRITES: bool = Field(
        default=True,
        description="Run the re-hydrate only after the persist completes",
    )
    DEFAULT_DATASET_SIZE: int = Field(
        default=180, ge=1, description="Dataset size used when none is given"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON-lines log file")

    @field_validator("STORE_COLLECTION")
    @classmethod
    def validate_store_collection(cls, v: str) -> str:
        """The collection name is interpolated into SQL, so it must be an identifier."""
        if not v.isidentifier():
            raise ValueError(
                f"STORE_COLLECTION must be a valid identifier, got {v!r}"
            )
        return v

    @property
    def store_path(self) -> Path:
        """Get store path (lowercase alias)."""
        return self.STORE_PATH

    @property
    def rpc_timeout(self) -> float | None:
        """Get RPC timeout (lowercase alias)."""
        return self.RPC_TIMEOUT_SECONDS

    def ensure_directories(self) -> None:
        """Create the store directory if it doesn't exist."""
        if str(self.STORE_PATH) != ":memory:":
            self.STORE_PATH.parent.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings for display."""
        return {
            "STORE_PATH": str(self.STORE_PATH),
            "STORE_COLLECTION": self.STORE_COLLECTION,
            "RPC_TIMEOUT_SECONDS": self.RPC_TIMEOUT_SECONDS,
            "SEQUENCED_WRITES": self.SEQUENCED_WRITES,
            "DEFAULT_DATASET_SIZE": self.DEFAULT_DATASET_SIZE,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
