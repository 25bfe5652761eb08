"""EquiDuty upload agent configuration settings using pydantic-settings."""

from functools import cached_property
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the upload agent.

    Settings are loaded from environment variables with the EQUIDUTY_ prefix.
    For example, EQUIDUTY_QUEUE_CHECK_INTERVAL=60 sets queue_check_interval to 60.
    """

    model_config = SettingsConfigDict(
        env_prefix="EQUIDUTY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API settings
    api_base_url: str = "http://localhost:8080"
    api_token: str = ""
    request_timeout: float = 60.0  # seconds, scaled by network quality

    # Upload settings
    max_upload_bytes: int = 5 * 1024 * 1024
    put_max_retries: int = 3  # additional attempts after the first PUT
    batch_concurrency: int = 4

    # Background queue settings
    queue_check_interval: float = 30.0  # seconds between drain checks
    queue_item_delay: float = 1.0  # pause between queued items
    queue_max_retries: int = 3

    # File paths
    data_dir: Path = Path("~/.local/share/equiduty")

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """Ensure the API URL is absolute and has no trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("request_timeout", "queue_check_interval")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Ensure timeouts and intervals are positive."""
        if v <= 0:
            raise ValueError("must be greater than 0 seconds")
        return v

    @field_validator("queue_item_delay")
    @classmethod
    def validate_item_delay(cls, v: float) -> float:
        """Ensure the inter-item delay is not negative."""
        if v < 0:
            raise ValueError("queue_item_delay must not be negative")
        return v

    @field_validator("put_max_retries", "queue_max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Ensure retry ceilings are within a sane range."""
        if v < 0 or v > 10:
            raise ValueError("retry counts must be between 0 and 10")
        return v

    @field_validator("max_upload_bytes", "batch_concurrency")
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        """Ensure size ceiling and concurrency are positive."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def queue_db_path(self) -> Path:
        """Return path of the SQLite file backing the upload queue."""
        return self.data_path / "uploads.db"
