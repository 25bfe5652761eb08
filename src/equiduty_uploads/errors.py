"""Error types raised by the photo upload flow.

Every failure in the upload path is an ImageUploadError subclass, so foreground
callers can catch one type and show ``str(error)``. The evidence batch queues
only errors whose ``retryable`` flag is set, and logs every failure with
``to_log_dict()`` as the record's extra fields.

Usage:
    from equiduty_uploads.errors import ImageUploadError

    try:
        url = await photos.upload_evidence_photo(image, None, instance_id, step_id)
    except ImageUploadError as e:
        show_toast(str(e))
"""

from typing import Any, ClassVar


class ImageUploadError(Exception):
    """Base class for all photo upload failures.

    Attributes:
        message: Human-readable error description
        context: Extra key/value pairs for structured logging
    """

    error_code: ClassVar[str] = "upload_error"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_log_dict(self) -> dict[str, Any]:
        """Return fields suitable for the ``extra`` of a log call."""
        return {
            "error_code": self.error_code,
            "error": self.message,
            **self.context,
        }


class CompressionFailedError(ImageUploadError):
    """The image could not be resized or encoded as JPEG."""

    error_code: ClassVar[str] = "compression_failed"

    def __init__(self, message: str = "Failed to compress image", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class InvalidImageError(ImageUploadError):
    """The bytes given are not a decodable image."""

    error_code: ClassVar[str] = "invalid_image"

    def __init__(self, message: str = "Invalid image data", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ImageTooLargeError(ImageUploadError):
    """Compressed payload is above the upload ceiling."""

    error_code: ClassVar[str] = "image_too_large"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Image exceeds maximum size of {limit // (1024 * 1024)}MB ({size} bytes)",
            context={"size_bytes": size, "limit_bytes": limit},
        )
        self.size = size
        self.limit = limit


class UploadFailedError(ImageUploadError):
    """Requesting the signed URL or writing to storage failed."""

    error_code: ClassVar[str] = "upload_failed"
    retryable: ClassVar[bool] = True


class MissingUploadUrlError(UploadFailedError):
    """Signed-URL response had no upload URL."""

    error_code: ClassVar[str] = "no_upload_url"

    def __init__(self) -> None:
        super().__init__("Missing upload URL from server")


class MissingReadUrlError(UploadFailedError):
    """Signed-URL response had no read URL."""

    error_code: ClassVar[str] = "no_read_url"

    def __init__(self) -> None:
        super().__init__("Missing read URL from server")


class MissingStoragePathError(UploadFailedError):
    """Signed-URL response had no storage path."""

    error_code: ClassVar[str] = "no_storage_path"

    def __init__(self) -> None:
        super().__init__("Missing storage path from server")


class MetadataCreationFailedError(ImageUploadError):
    """The media metadata record could not be created after upload."""

    error_code: ClassVar[str] = "metadata_failed"


class ParentUpdateFailedError(ImageUploadError):
    """The record that references the upload (e.g. the horse) was not updated."""

    error_code: ClassVar[str] = "parent_update_failed"
