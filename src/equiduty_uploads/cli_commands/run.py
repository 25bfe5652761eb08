"""Run command: start the background upload agent in the foreground."""

import asyncio
import json
import os
import signal
from pathlib import Path

import typer

from equiduty_uploads.config import get_settings
from equiduty_uploads.logging import setup_logging

PID_FILE_NAME = "agent.pid"


def pid_file_path() -> Path:
    """PID file location inside the configured data directory."""
    return get_settings().data_path / PID_FILE_NAME


def get_running_pid() -> int | None:
    """Get the PID of the running agent, if any."""
    pid_file = pid_file_path()
    if not pid_file.exists():
        return None

    try:
        pid = int(pid_file.read_text().strip())
        # Check if process exists
        os.kill(pid, 0)
        return pid
    except (ValueError, OSError):
        # Stale PID file
        pid_file.unlink(missing_ok=True)
        return None


def _write_pid() -> None:
    pid_file = pid_file_path()
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))


def _cleanup_pid() -> None:
    pid_file_path().unlink(missing_ok=True)


def _output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


async def _run_agent() -> None:
    from equiduty_uploads.engine import UploadAgent

    agent = UploadAgent(get_settings())
    loop = asyncio.get_running_loop()
    task = asyncio.create_task(agent.start())
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, task.cancel)

    try:
        await task
    except asyncio.CancelledError:
        pass
    finally:
        await agent.stop()


def run_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Run the upload agent until interrupted.

    Loads the persisted queue and drains it every check interval whenever
    the API is reachable. Press Ctrl+C to stop.
    """
    existing_pid = get_running_pid()
    if existing_pid:
        _output(
            {"status": "error", "message": "Agent already running", "pid": existing_pid},
            output_json,
            f"Agent already running (PID: {existing_pid}).",
        )
        raise typer.Exit(1)

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    _output(
        {"status": "starting", "pid": os.getpid()},
        output_json,
        f"Starting upload agent (check interval: {settings.queue_check_interval:g}s)...",
    )

    _write_pid()
    try:
        asyncio.run(_run_agent())
    finally:
        _cleanup_pid()

    if not output_json:
        typer.echo("Upload agent stopped.")
