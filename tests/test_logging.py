"""Tests for structured JSON logging."""

import json
import logging

from equiduty_uploads import __version__
from equiduty_uploads.logging import (
    get_logger,
    log_state_change,
    log_upload_dropped,
    log_upload_failed,
    log_upload_queued,
    log_upload_success,
    set_agent_id,
    setup_logging,
)


def _read_records(path) -> list[dict]:
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestSetupLogging:
    """Root logger configuration."""

    def test_json_file_output(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "agent.log"
        setup_logging("INFO", log_file=log_file, agent_id="test-agent")

        get_logger("equiduty_uploads.test").info("hello %s", "world")

        (record,) = _read_records(log_file)
        assert record["message"] == "hello world"
        assert record["level"] == "INFO"
        assert record["logger"] == "equiduty_uploads.test"
        assert record["agent_version"] == __version__
        assert record["agent_id"] == "test-agent"
        assert record["timestamp"].endswith("+00:00")

    def test_level_applied(self, restore_root_logger):
        setup_logging("warning")

        assert logging.getLogger().level == logging.WARNING

    def test_http_loggers_quieted(self, restore_root_logger):
        setup_logging("DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_handlers_replaced(self, restore_root_logger):
        setup_logging("INFO")
        setup_logging("INFO")

        assert len(logging.getLogger().handlers) == 1


class TestAuditEvents:
    """Typed audit helpers attach an event name and context."""

    def test_upload_success(self, caplog):
        caplog.set_level(logging.INFO)
        log_upload_success(get_logger("t"), "uploads/a.jpg", 1234, 56.78, retries=2, queue_id="q1")

        (record,) = caplog.records
        assert record.event == "upload_success"
        assert record.storage_path == "uploads/a.jpg"
        assert record.duration_ms == 56.8
        assert record.retries == 2
        assert record.queue_id == "q1"

    def test_upload_failed_is_warning(self, caplog):
        log_upload_failed(get_logger("t"), "upload_failed", "HTTP 500", attempt_count=2)

        (record,) = caplog.records
        assert record.levelno == logging.WARNING
        assert record.attempt_count == 2
        assert not hasattr(record, "queue_id")

    def test_upload_queued(self, caplog):
        caplog.set_level(logging.INFO)
        log_upload_queued(get_logger("t"), "q1", "/e", 3)

        (record,) = caplog.records
        assert (record.event, record.queue_size) == ("upload_queued", 3)

    def test_upload_dropped(self, caplog):
        log_upload_dropped(get_logger("t"), "q1", 3, "HTTP 500")

        (record,) = caplog.records
        assert record.event == "upload_dropped"
        assert record.levelno == logging.WARNING
        assert record.retry_count == 3

    def test_state_change(self, caplog):
        caplog.set_level(logging.INFO)
        log_state_change(get_logger("t"), "idle", "processing", trigger="periodic_check")

        (record,) = caplog.records
        assert (record.old_state, record.new_state, record.trigger) == (
            "idle",
            "processing",
            "periodic_check",
        )

    def test_set_agent_id(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "agent.log"
        setup_logging("INFO", log_file=log_file)
        set_agent_id("other-agent")

        get_logger("t").info("x")

        assert _read_records(log_file)[-1]["agent_id"] == "other-agent"
