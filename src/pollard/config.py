"""
Configuration management using pydantic-settings.

Loads configuration from POLLARD_* environment variables and .env files.
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
        POLLARD_LOG_LEVEL: Logging level
        POLLARD_OUTPUT_DIR: Directory for event journals and logs
        POLLARD_MAX_RESULTS: Results requested per query from each hunter
        POLLARD_HUNT_MODE: quick | balanced | deep
        POLLARD_DEFAULT_HUNTERS: Comma separated hunter names
        POLLARD_HN_MIN_POINTS: Minimum HackerNews points for an insight
        POLLARD_HN_REQUESTS_PER_MINUTE: HackerNews API rate limit
        POLLARD_HTTP_TIMEOUT_SECONDS: Timeout for hunter HTTP requests
    """

    model_config = SettingsConfigDict(
        env_prefix="POLLARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    # Directories
    OUTPUT_DIR: Path = Field(default=Path(".pollard"), description="Output directory")

    # Hunt parameters
    MAX_RESULTS: int = Field(
        default=10, ge=1, le=100, description="Results requested per query"
    )
    HUNT_MODE: Literal["quick", "balanced", "deep"] = Field(
        default="balanced", description="Hunt depth passed to every hunter"
    )
    DEFAULT_HUNTERS: str = Field(
        default="hackernews-trendwatcher",
        description="Comma separated hunters used when none are given",
    )

    # HackerNews hunter
    HN_MIN_POINTS: int = Field(
        default=0, ge=0, description="Minimum points for a story to count as an insight"
    )
    HN_REQUESTS_PER_MINUTE: int = Field(
        default=60, ge=1, le=1000, description="HackerNews API request budget"
    )

    # HTTP
    HTTP_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0.0, description="Timeout for hunter HTTP requests"
    )

    @field_validator("DEFAULT_HUNTERS")
    @classmethod
    def validate_default_hunters(cls, v: str) -> str:
        """Require at least one hunter name."""
        if not any(name.strip() for name in v.split(",")):
            raise ValueError("DEFAULT_HUNTERS must name at least one hunter")
        return v

    @property
    def default_hunters(self) -> list[str]:
        """Default hunter names, in configured order."""
        return [name.strip() for name in self.DEFAULT_HUNTERS.split(",") if name.strip()]

    def ensure_directories(self) -> None:
        """Create the output directory if it doesn't exist."""
        self.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    def journal_dir(self) -> Path:
        """Directory holding the event journal."""
        path = self.OUTPUT_DIR / "journal"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def display(self) -> dict[str, str | int | float | None]:
        """Return settings for display."""
        return {
            "LOG_LEVEL": self.LOG_LEVEL,
            "OUTPUT_DIR": str(self.OUTPUT_DIR),
            "MAX_RESULTS": self.MAX_RESULTS,
            "HUNT_MODE": self.HUNT_MODE,
            "DEFAULT_HUNTERS": self.DEFAULT_HUNTERS,
            "HN_MIN_POINTS": self.HN_MIN_POINTS,
            "HN_REQUESTS_PER_MINUTE": self.HN_REQUESTS_PER_MINUTE,
            "HTTP_TIMEOUT_SECONDS": self.HTTP_TIMEOUT_SECONDS,
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
