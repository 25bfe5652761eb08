"""EquiDuty upload agent CLI."""

import typer

from equiduty_uploads import __version__
from equiduty_uploads.cli_commands import (
    config_app,
    queue_app,
    run_command,
    status_command,
    upload_app,
)

app = typer.Typer(
    name="equiduty-uploads",
    help="EquiDuty photo uploads - signed-URL uploads with an offline retry queue.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(queue_app, name="queue")
app.add_typer(upload_app, name="upload")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"equiduty-uploads {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """EquiDuty photo upload agent."""
    pass


app.command(name="run")(run_command)
app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
