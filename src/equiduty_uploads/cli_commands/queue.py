"""Background queue CLI commands."""

import asyncio
import json
from datetime import datetime, timezone

import typer

from equiduty_uploads.cli_commands.run import get_running_pid
from equiduty_uploads.config import get_settings
from equiduty_uploads.sync import DrainReport, StaticNetworkQuality

queue_app = typer.Typer(
    name="queue",
    help="Background upload queue - inspect, drain and clear.",
    no_args_is_help=True,
)


def _age(created_at: datetime) -> str:
    """Format an item's age as '5m' / '2h' / '3d'."""
    seconds = int((datetime.now(timezone.utc) - created_at).total_seconds())
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


def _open_agent(force: bool = False):
    from equiduty_uploads.engine import UploadAgent

    network = StaticNetworkQuality(is_upload_recommended=True) if force else None
    return UploadAgent(get_settings(), network=network)


@queue_app.command(name="list")
def list_items(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List queued uploads, front of the queue first."""

    async def _load():
        async with _open_agent() as agent:
            return agent.queue.items

    items = asyncio.run(_load())

    if output_json:
        typer.echo(
            json.dumps(
                [
                    {
                        "id": item.id,
                        "endpoint": item.endpoint,
                        "size_bytes": len(item.image_bytes),
                        "retry_count": item.retry_count,
                        "max_retries": item.max_retries,
                        "created_at": item.created_at.isoformat(),
                    }
                    for item in items
                ]
            )
        )
        return

    if not items:
        typer.echo("Upload queue is empty.")
        return

    for item in items:
        typer.echo(
            f"{item.id}  retries={item.retry_count}/{item.max_retries}  "
            f"size={len(item.image_bytes)}  age={_age(item.created_at)}  {item.endpoint}"
        )


@queue_app.command()
def drain(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Drain even if the network probe does not recommend uploads",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Process every queued upload once, now.

    Refused while a background agent is running; that agent drains the
    shared queue on its own schedule.
    """
    pid = get_running_pid()
    if pid:
        if output_json:
            typer.echo(json.dumps({"status": "skipped", "reason": "agent_running", "pid": pid}))
        else:
            typer.echo(f"Upload agent is running (PID {pid}) and drains the queue itself.")
        raise typer.Exit(1)


    async def _drain() -> DrainReport | None:
        async with _open_agent(force) as agent:
            if len(agent.queue) == 0:
                return DrainReport()
            await agent.network.refresh()
            if not agent.network.is_upload_recommended:
                return None
            return await agent.processor.drain(trigger="cli")

    report = asyncio.run(_drain())

    if report is None:
        if output_json:
            typer.echo(json.dumps({"status": "skipped", "reason": "network"}))
        else:
            typer.echo("Network not suitable for uploads. Use --force to drain anyway.")
        raise typer.Exit(1)

    if output_json:
        typer.echo(
            json.dumps(
                {
                    "status": "drained",
                    "succeeded": report.succeeded,
                    "retried": report.retried,
                    "dropped": report.dropped,
                }
            )
        )
    elif report.processed == 0:
        typer.echo("Upload queue is empty.")
    else:
        typer.echo(
            f"Drained {report.processed} uploads: {len(report.succeeded)} succeeded, "
            f"{len(report.retried)} will retry, {len(report.dropped)} dropped."
        )


@queue_app.command()
def clear(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """Remove every queued upload without sending it."""
    if not yes:
        typer.confirm("Discard all queued uploads?", abort=True)

    async def _clear() -> int:
        async with _open_agent() as agent:
            return agent.queue.clear()

    removed = asyncio.run(_clear())
    typer.echo(f"Removed {removed} queued uploads.")
