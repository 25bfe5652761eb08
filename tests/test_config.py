"""Tests for settings loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from equiduty_uploads.config import Settings, get_settings


class TestDefaults:
    """Values used when nothing is configured."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("EQUIDUTY_DATA_DIR")
        settings = Settings()

        assert settings.request_timeout == 60.0
        assert settings.queue_check_interval == 30.0
        assert settings.queue_item_delay == 1.0
        assert settings.queue_max_retries == 3
        assert settings.put_max_retries == 3
        assert settings.max_upload_bytes == 5 * 1024 * 1024
        assert settings.log_level == "INFO"
        assert settings.data_path == Path("~/.local/share/equiduty").expanduser()

    def test_queue_db_inside_data_dir(self, tmp_path):
        settings = Settings(data_dir=tmp_path)

        assert settings.queue_db_path == tmp_path / "uploads.db"


class TestEnvironment:
    """EQUIDUTY_ prefixed environment variables."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("EQUIDUTY_API_BASE_URL", "https://api.example.com/")
        monkeypatch.setenv("EQUIDUTY_QUEUE_CHECK_INTERVAL", "60")
        monkeypatch.setenv("EQUIDUTY_LOG_LEVEL", "debug")

        settings = Settings()

        assert settings.api_base_url == "https://api.example.com"
        assert settings.queue_check_interval == 60.0
        assert settings.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("EQUIDUTY_BATCH_CONCURRENCY=8\n")

        assert Settings().batch_concurrency == 8

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestValidation:
    """Rejected values."""

    @pytest.mark.parametrize(
        "field,value",
        [
            ("api_base_url", "api.example.com"),
            ("request_timeout", 0),
            ("queue_check_interval", -1),
            ("queue_item_delay", -0.5),
            ("queue_max_retries", 11),
            ("put_max_retries", -1),
            ("max_upload_bytes", 0),
            ("batch_concurrency", 0),
            ("log_level", "LOUD"),
        ],
    )
    def test_invalid(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})

    def test_zero_item_delay_allowed(self):
        assert Settings(queue_item_delay=0).queue_item_delay == 0
