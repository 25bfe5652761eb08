"""Configuration CLI commands."""

import json

import typer

from equiduty_uploads.config import get_settings

config_app = typer.Typer(
    name="config",
    help="Configuration - view effective settings.",
    no_args_is_help=True,
)


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current configuration. The API token is never printed."""
    settings = get_settings()

    config_data = {
        "api_base_url": settings.api_base_url,
        "api_token_set": bool(settings.api_token),
        "request_timeout": settings.request_timeout,
        "max_upload_bytes": settings.max_upload_bytes,
        "put_max_retries": settings.put_max_retries,
        "batch_concurrency": settings.batch_concurrency,
        "queue_check_interval": settings.queue_check_interval,
        "queue_item_delay": settings.queue_item_delay,
        "queue_max_retries": settings.queue_max_retries,
        "data_dir": str(settings.data_path),
        "log_level": settings.log_level,
        "log_file": str(settings.log_file) if settings.log_file else None,
    }

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
        return

    typer.echo("")
    typer.echo("EquiDuty Upload Configuration")
    typer.echo("-----------------------------")
    typer.echo(f"API URL: {settings.api_base_url}")
    typer.echo(f"API token: {'set' if settings.api_token else 'not set'}")
    typer.echo(f"Request timeout: {settings.request_timeout:g}s")
    typer.echo(f"Max upload size: {settings.max_upload_bytes} bytes")
    typer.echo(f"PUT retries: {settings.put_max_retries}")
    typer.echo(f"Batch concurrency: {settings.batch_concurrency}")
    typer.echo(f"Queue check interval: {settings.queue_check_interval:g}s")
    typer.echo(f"Queue item delay: {settings.queue_item_delay:g}s")
    typer.echo(f"Queue max retries: {settings.queue_max_retries}")
    typer.echo(f"Data directory: {settings.data_path}")
    typer.echo(f"Log level: {settings.log_level}")
    typer.echo("")
    typer.echo("Set values using environment variables with EQUIDUTY_ prefix")
    typer.echo("Example: EQUIDUTY_QUEUE_CHECK_INTERVAL=60")
