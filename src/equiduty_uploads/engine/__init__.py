"""Engine module for upload agent composition."""

from equiduty_uploads.engine.agent import UploadAgent

__all__ = ["UploadAgent"]
