"""Imaging module - photo decoding and JPEG compression."""

from equiduty_uploads.imaging.compress import (
    AVATAR_PHOTO,
    COVER_PHOTO,
    EVIDENCE_PHOTO,
    MAX_UPLOAD_BYTES,
    CompressionPreset,
    compress_image,
    compress_with_preset,
    decode_image,
    ensure_upload_size,
)

__all__ = [
    "AVATAR_PHOTO",
    "COVER_PHOTO",
    "EVIDENCE_PHOTO",
    "MAX_UPLOAD_BYTES",
    "CompressionPreset",
    "compress_image",
    "compress_with_preset",
    "decode_image",
    "ensure_upload_size",
]
