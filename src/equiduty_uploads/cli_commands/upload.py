"""One-off photo upload CLI commands."""

import asyncio
import json
from pathlib import Path

import typer
from PIL import Image, UnidentifiedImageError

from equiduty_uploads.config import get_settings
from equiduty_uploads.errors import ImageUploadError
from equiduty_uploads.services import PhotoPurpose

upload_app = typer.Typer(
    name="upload",
    help="Upload photos through the signed-URL flow.",
    no_args_is_help=True,
)


def _open_image(path: Path) -> Image.Image:
    try:
        img = Image.open(path)
        img.load()
        return img
    except (UnidentifiedImageError, OSError) as e:
        typer.echo(f"Cannot read image {path}: {e}", err=True)
        raise typer.Exit(1)


@upload_app.command()
def photo(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image file"),
    horse_id: str = typer.Option(..., "--horse", help="Horse id"),
    purpose: PhotoPurpose = typer.Option(PhotoPurpose.COVER, "--purpose", help="cover or avatar"),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Upload a horse cover or avatar photo."""
    from equiduty_uploads.engine import UploadAgent

    image = _open_image(path)

    async def _upload() -> str:
        async with UploadAgent(get_settings()) as agent:
            return await agent.photos.upload_horse_photo(horse_id, image, purpose)

    try:
        storage_path = asyncio.run(_upload())
    except ImageUploadError as e:
        if output_json:
            typer.echo(json.dumps({"status": "error", "error_code": e.error_code, "message": e.message}))
        else:
            typer.echo(f"Upload failed: {e}", err=True)
        raise typer.Exit(1)

    if output_json:
        typer.echo(json.dumps({"status": "uploaded", "storage_path": storage_path}))
    else:
        typer.echo(f"Uploaded {path.name} to {storage_path}")


@upload_app.command()
def evidence(
    paths: list[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Image files"),
    instance_id: str = typer.Option(..., "--instance", help="Routine instance id"),
    step_id: str = typer.Option(..., "--step", help="Routine step id"),
    horse_id: str = typer.Option(None, "--horse", help="Horse id"),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Upload routine step evidence photos.

    Photos that fail on the network are queued for the background agent.
    """
    from equiduty_uploads.engine import UploadAgent

    images = [_open_image(path) for path in paths]

    async def _upload():
        async with UploadAgent(get_settings()) as agent:
            return await agent.photos.upload_evidence_batch(images, horse_id, instance_id, step_id)

    result = asyncio.run(_upload())

    if output_json:
        typer.echo(
            json.dumps(
                {
                    "status": "uploaded" if result.failed_count == 0 else "partial",
                    "urls": result.urls,
                    "failed": result.failed_count,
                    "queued": result.queued_ids,
                }
            )
        )
    else:
        typer.echo(f"Uploaded {len(result.urls)} of {len(images)} photos.")
        if result.queued_ids:
            typer.echo(f"{len(result.queued_ids)} queued for background retry.")

    if result.failed_count and not result.queued_ids:
        raise typer.Exit(1)
