"""JPEG compression for photo uploads.

Downscales images to a maximum dimension (never upscaling) and re-encodes
them as JPEG so uploads stay small on mobile networks.
"""

import logging
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from equiduty_uploads.errors import ImageTooLargeError, InvalidImageError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024

# Pillow's JPEG encoder gains nothing above 95
_MAX_PIL_QUALITY = 95


@dataclass(frozen=True)
class CompressionPreset:
    """Target size and quality for one kind of photo.

    Attributes:
        max_dimension: Longest side in pixels after resizing
        quality: JPEG quality factor, 0.0 - 1.0
    """

    max_dimension: int
    quality: float


COVER_PHOTO = CompressionPreset(max_dimension=1200, quality=0.75)
AVATAR_PHOTO = CompressionPreset(max_dimension=600, quality=0.75)
# Evidence photos aim for roughly 200KB
EVIDENCE_PHOTO = CompressionPreset(max_dimension=800, quality=0.65)


def _pil_quality(quality: float) -> int:
    """Map a 0.0 - 1.0 quality factor onto Pillow's 1 - 95 scale."""
    return max(1, min(_MAX_PIL_QUALITY, round(quality * 100)))


def target_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Compute the resized dimensions for an image.

    The longest side is scaled down to max_dimension and the other side
    follows the aspect ratio. Images already within max_dimension keep
    their size.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        max_dimension: Longest allowed side in pixels

    Returns:
        Tuple of (width, height)
    """
    if width <= max_dimension and height <= max_dimension:
        return width, height

    if width >= height:
        ratio = max_dimension / width
        return max_dimension, max(1, round(height * ratio))

    ratio = max_dimension / height
    return max(1, round(width * ratio)), max_dimension


def compress_image(img: Image.Image, max_dimension: int, quality: float) -> bytes | None:
    """Resize and compress a PIL Image to JPEG bytes.

    Args:
        img: Source image
        max_dimension: Maximum width or height in pixels
        quality: JPEG quality factor (0.0 - 1.0)

    Returns:
        JPEG image as bytes, or None if encoding fails
    """
    try:
        img = ImageOps.exif_transpose(img)
        new_size = target_size(img.width, img.height, max_dimension)

        if new_size != img.size:
            img = img.resize(new_size, Image.Resampling.LANCZOS)
        else:
            logger.debug("Image already within max_dimension=%d, skipping resize", max_dimension)

        # JPEG has no alpha channel or palette
        if img.mode != "RGB":
            img = img.convert("RGB")

        buffer = BytesIO()
        img.save(
            buffer,
            format="JPEG",
            quality=_pil_quality(quality),
            optimize=True,
            progressive=True,
        )
    except (OSError, ValueError) as e:
        logger.warning("JPEG compression failed: %s", e)
        return None

    data = buffer.getvalue()
    logger.debug(
        "Compressed image: %dx%d, %.1f KB",
        new_size[0],
        new_size[1],
        len(data) / 1024,
    )
    return data


def compress_with_preset(img: Image.Image, preset: CompressionPreset) -> bytes | None:
    """Compress an image with a named preset."""
    return compress_image(img, preset.max_dimension, preset.quality)


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes into a fully loaded PIL Image.

    Args:
        data: Encoded image bytes (JPEG, PNG, ...)

    Returns:
        Loaded PIL Image

    Raises:
        InvalidImageError: If the bytes are not a decodable image
    """
    if not data:
        raise InvalidImageError("Image data is empty")

    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"Invalid image data: {e}") from e
    return img


def ensure_upload_size(data: bytes, limit: int = MAX_UPLOAD_BYTES) -> None:
    """Raise ImageTooLargeError if a compressed payload is above limit."""
    if len(data) > limit:
        logger.warning("Compressed image too large: %d bytes (max: %d)", len(data), limit)
        raise ImageTooLargeError(len(data), limit)
