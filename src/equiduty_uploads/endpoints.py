"""REST endpoint paths used by the photo upload flow."""

HORSE_MEDIA = "/api/v1/horse-media"
HORSE_MEDIA_UPLOAD_URL = "/api/v1/horse-media/upload-url"
HEALTH = "/health"


def horse(horse_id: str) -> str:
    """Path of a single horse record."""
    return f"/api/v1/horses/{horse_id}"


def routine_step_upload_url(instance_id: str, step_id: str) -> str:
    """Path that issues signed URLs for routine step evidence photos."""
    return f"/api/v1/routines/instances/{instance_id}/steps/{step_id}/upload-url"
