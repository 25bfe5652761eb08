"""Structured JSON logging for the EquiDuty upload agent.

Provides audit-friendly logging with contextual fields for upload attempts,
queue changes and processor state. Image bytes and API tokens never go to logs.

Usage:
    from equiduty_uploads.logging import setup_logging, get_logger

    setup_logging("INFO")
    log = get_logger("equiduty_uploads.sync")
    log.info("upload_queued", extra={"queue_id": "...", "queue_size": 2})
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger import jsonlogger

from equiduty_uploads import __version__

# Default agent identifier (can be overridden)
_agent_id: str | None = None


class UploadJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds agent context to all log records."""

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        log_record["agent_version"] = __version__
        if _agent_id:
            log_record["agent_id"] = _agent_id

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    agent_id: str | None = None,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """Configure root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for rotating file handler
        agent_id: Unique identifier for this agent instance
        max_bytes: Max size per log file for rotation
        backup_count: Number of backup files to keep
    """
    global _agent_id
    if agent_id:
        _agent_id = agent_id

    formatter = UploadJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stderr so stdout stays free for CLI output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO, including signed URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


@lru_cache(maxsize=32)
def get_logger(name: str) -> logging.Logger:
    """Get a named logger.

    Args:
        name: Logger name (e.g., 'equiduty_uploads.sync')

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_agent_id(agent_id: str) -> None:
    """Set the agent identifier for log context."""
    global _agent_id
    _agent_id = agent_id


# --- Audit Event Functions ---


def log_upload_success(
    logger: logging.Logger,
    storage_path: str,
    size_bytes: int,
    duration_ms: float,
    retries: int = 0,
    queue_id: str | None = None,
) -> None:
    """Log a completed upload.

    Args:
        logger: Logger instance
        storage_path: Object path in storage
        size_bytes: Uploaded payload size
        duration_ms: Wall time of the signed-URL request plus PUT
        retries: Storage PUT retries needed
        queue_id: Queue item id when the upload came from the background queue
    """
    extra = {
        "event": "upload_success",
        "storage_path": storage_path,
        "size_bytes": size_bytes,
        "duration_ms": round(duration_ms, 1),
        "retries": retries,
    }
    if queue_id:
        extra["queue_id"] = queue_id
    logger.info("Upload successful", extra=extra)


def log_upload_failed(
    logger: logging.Logger,
    error_code: str,
    error: str,
    attempt_count: int,
    queue_id: str | None = None,
) -> None:
    """Log a failed upload attempt.

    Args:
        logger: Logger instance
        error_code: Machine-readable error code
        error: Error message (no URLs with signatures, no tokens)
        attempt_count: Which attempt this was
        queue_id: Queue item id when the upload came from the background queue
    """
    extra = {
        "event": "upload_failed",
        "error_code": error_code,
        "error": error,
        "attempt_count": attempt_count,
    }
    if queue_id:
        extra["queue_id"] = queue_id
    logger.warning("Upload failed", extra=extra)


def log_upload_queued(
    logger: logging.Logger,
    queue_id: str,
    endpoint: str,
    queue_size: int,
) -> None:
    """Log an upload handed to the background queue."""
    logger.info(
        "Upload queued for background retry",
        extra={
            "event": "upload_queued",
            "queue_id": queue_id,
            "endpoint": endpoint,
            "queue_size": queue_size,
        },
    )


def log_upload_dropped(
    logger: logging.Logger,
    queue_id: str,
    retry_count: int,
    error: str,
) -> None:
    """Log an upload permanently dropped after exhausting its retries.

    Args:
        logger: Logger instance
        queue_id: Queue item id
        retry_count: Retries made before giving up
        error: Last error seen
    """
    logger.warning(
        "Upload dropped after max retries",
        extra={
            "event": "upload_dropped",
            "queue_id": queue_id,
            "retry_count": retry_count,
            "error": error,
        },
    )


def log_state_change(
    logger: logging.Logger,
    old_state: str,
    new_state: str,
    trigger: str | None = None,
) -> None:
    """Log a state transition.

    Args:
        logger: Logger instance
        old_state: Previous state
        new_state: New state
        trigger: What triggered the change
    """
    extra = {
        "event": "state_change",
        "old_state": old_state,
        "new_state": new_state,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.info("State changed", extra=extra)
