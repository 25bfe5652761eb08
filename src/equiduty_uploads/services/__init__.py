"""Services module - photo upload workflows."""

from equiduty_uploads.services.photos import BatchUploadResult, PhotoPurpose, PhotoUploadService

__all__ = ["BatchUploadResult", "PhotoPurpose", "PhotoUploadService"]
