"""Status command for the upload agent CLI."""

import json
from typing import Any

import typer

from equiduty_uploads.cli_commands.run import get_running_pid
from equiduty_uploads.config import get_settings
from equiduty_uploads.sync import KeyValueStore, UploadQueue

EMPTY_STATS = {"total": 0, "fresh": 0, "retrying": 0, "bytes": 0}


def _get_queue_stats() -> dict[str, Any]:
    """Read queue statistics straight from the database file."""
    settings = get_settings()
    if not settings.queue_db_path.exists():
        return dict(EMPTY_STATS)

    store = KeyValueStore(settings.queue_db_path)
    try:
        queue = UploadQueue(store, max_retries=settings.queue_max_retries)
        queue.load()
        return queue.get_stats()
    finally:
        store.close()


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show agent status and background queue size."""
    pid = get_running_pid()
    stats = _get_queue_stats()

    status_data = {
        "running": pid is not None,
        "pid": pid,
        "queue_total": stats["total"],
        "queue_retrying": stats["retrying"],
        "queue_bytes": stats["bytes"],
    }

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("EquiDuty Upload Agent Status")
    typer.echo("----------------------------")
    if pid is not None:
        typer.echo("State: Running")
        typer.echo(f"PID: {pid}")
    else:
        typer.echo("State: Not running")

    typer.echo(f"Queue: {stats['total']} pending uploads")
    if stats["retrying"] > 0:
        typer.echo(f"Retrying: {stats['retrying']} uploads")
    typer.echo("")

    if pid is None:
        typer.echo("Start the agent with: equiduty-uploads run")
