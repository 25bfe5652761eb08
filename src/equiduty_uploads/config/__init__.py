"""EquiDuty upload agent configuration module.

Provides centralized configuration management using pydantic-settings.

Usage:
    from equiduty_uploads.config import get_settings

    settings = get_settings()
    print(settings.api_base_url)
    print(settings.queue_db_path)
"""

from functools import lru_cache

from equiduty_uploads.config.settings import Settings

__all__ = ["Settings", "get_settings"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Only the CLI entry points call this; library components receive their
    Settings through constructor arguments.

    To reload settings, call get_settings.cache_clear() first.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()
