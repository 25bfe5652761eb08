"""Sync module for signed-URL upload and offline retry queue management."""

from equiduty_uploads.sync.network import NetworkQuality, ProbeNetworkQuality, StaticNetworkQuality
from equiduty_uploads.sync.processor import DrainReport, ProcessorState, QueueProcessor
from equiduty_uploads.sync.queue import QueuedUpload, UploadQueue
from equiduty_uploads.sync.store import KeyValueStore
from equiduty_uploads.sync.uploader import SignedUrlUploader, UploadTarget, UploadUrlResponse

__all__ = [
    "DrainReport",
    "KeyValueStore",
    "NetworkQuality",
    "ProbeNetworkQuality",
    "ProcessorState",
    "QueueProcessor",
    "QueuedUpload",
    "SignedUrlUploader",
    "StaticNetworkQuality",
    "UploadQueue",
    "UploadTarget",
    "UploadUrlResponse",
]
