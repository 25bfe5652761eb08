"""CLI command modules for the EquiDuty upload agent."""

from equiduty_uploads.cli_commands.config import config_app
from equiduty_uploads.cli_commands.queue import queue_app
from equiduty_uploads.cli_commands.run import run_command
from equiduty_uploads.cli_commands.status import status_command
from equiduty_uploads.cli_commands.upload import upload_app

__all__ = ["config_app", "queue_app", "run_command", "status_command", "upload_app"]
