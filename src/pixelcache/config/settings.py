"""
Application settings and configuration management.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FALLBACK_RESOURCE = "/placeholder/200x150?text=Image+Not+Available"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Storage
    cache_dir: Path = Field(default=Path("./cache"))
    database_url: str = Field(default="")
    db_log_queries: bool = Field(default=False)  # Log all SQL queries

    # Loader
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    max_concurrent: int = Field(default=5, ge=1)
    cache_capacity: int = Field(default=100, ge=1)
    fallback_resource: str = Field(default=DEFAULT_FALLBACK_RESOURCE)
    request_timeout: float = Field(default=10.0, gt=0)

    @field_validator("cache_dir", mode="before")
    @classmethod
    def ensure_path(cls, v: str | Path) -> Path:
        """Ensure the cache directory is a Path object."""
        if isinstance(v, str):
            return Path(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("fallback_resource")
    @classmethod
    def validate_fallback_resource(cls, v: str) -> str:
        """Reject an empty fallback reference."""
        if not v.strip():
            raise ValueError("fallback_resource must not be empty")
        return v

    def create_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @property
    def effective_database_url(self) -> str:
        """Database URL, defaulting to a sqlite file inside ``cache_dir``."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.cache_dir / 'pixelcache.db'}"

    model_config = SettingsConfigDict(
        env_prefix="PIXELCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


# Global settings instance
settings = get_settings()
