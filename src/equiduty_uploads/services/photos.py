"""Photo upload workflows: horse profile photos and routine evidence photos."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from PIL import Image

from equiduty_uploads import endpoints
from equiduty_uploads.errors import (
    CompressionFailedError,
    ImageUploadError,
    MetadataCreationFailedError,
    ParentUpdateFailedError,
)
from equiduty_uploads.imaging import (
    AVATAR_PHOTO,
    COVER_PHOTO,
    EVIDENCE_PHOTO,
    CompressionPreset,
    compress_with_preset,
)
from equiduty_uploads.logging import log_upload_queued
from equiduty_uploads.sync.queue import UploadQueue
from equiduty_uploads.sync.uploader import SignedUrlUploader, UploadTarget

logger = logging.getLogger(__name__)

JPEG_MIME_TYPE = "image/jpeg"


class PhotoPurpose(str, Enum):
    """Where a horse photo is shown."""

    COVER = "cover"
    AVATAR = "avatar"

    @property
    def preset(self) -> CompressionPreset:
        return COVER_PHOTO if self is PhotoPurpose.COVER else AVATAR_PHOTO

    @property
    def path_field(self) -> str:
        """Horse record field holding this photo's storage path."""
        return "coverPhotoPath" if self is PhotoPurpose.COVER else "avatarPhotoPath"


@dataclass
class BatchUploadResult:
    """Outcome of a concurrent evidence batch."""

    urls: list[str] = field(default_factory=list)
    failed_count: int = 0
    queued_ids: list[str] = field(default_factory=list)


class PhotoUploadService:
    """Compress-and-upload workflows built on the signed-URL uploader.

    Foreground methods raise the first terminal ImageUploadError. The batch
    method never raises for individual photos: network failures go to the
    background queue and the caller gets a failure count.

    A horse photo upload runs storage upload, then the media record, then
    the horse update. If a later step fails the stored object is orphaned;
    storage lifecycle rules remove it. Uploading last would instead leave
    records pointing at files that do not exist.
    """

    def __init__(
        self,
        uploader: SignedUrlUploader,
        queue: UploadQueue | None = None,
        batch_concurrency: int = 4,
    ) -> None:
        """Initialize the service.

        Args:
            uploader: Signed-URL uploader (also used for JSON API calls)
            queue: Background retry queue for failed batch uploads
            batch_concurrency: Maximum concurrent uploads within a batch
        """
        self.uploader = uploader
        self.queue = queue
        self.batch_concurrency = batch_concurrency

    def _compress(self, image: Image.Image, preset: CompressionPreset) -> bytes:
        data = compress_with_preset(image, preset)
        if data is None:
            raise CompressionFailedError()
        return data

    async def compress_and_upload(
        self,
        image: Image.Image,
        endpoint: str,
        body: dict[str, Any],
        preset: CompressionPreset = COVER_PHOTO,
    ) -> UploadTarget:
        """Compress an image and upload it through a signed URL.

        Args:
            image: Source image
            endpoint: API path issuing the signed URL
            body: File metadata for the signed-URL request
            preset: Compression preset

        Returns:
            UploadTarget with read URL and storage path

        Raises:
            CompressionFailedError: If the image cannot be encoded
            ImageTooLargeError: If the compressed image exceeds the ceiling
            UploadFailedError: If the signed URL request or PUT fails
        """
        data = self._compress(image, preset)
        return await self.uploader.upload(data, endpoint, body)

    async def upload_horse_photo(
        self,
        horse_id: str,
        image: Image.Image,
        purpose: PhotoPurpose,
    ) -> str:
        """Upload a horse cover or avatar photo and attach it to the horse.

        Returns:
            Storage path of the uploaded photo

        Raises:
            ImageUploadError: First failing step (compression, upload,
                metadata record, horse update)
        """
        logger.info("Starting horse photo upload: horse_id=%s, purpose=%s", horse_id, purpose.value)

        file_name = f"{purpose.value}_{uuid.uuid4()}.jpg"
        data = self._compress(image, purpose.preset)
        target = await self.uploader.upload(
            data,
            endpoints.HORSE_MEDIA_UPLOAD_URL,
            {
                "horseId": horse_id,
                "fileName": file_name,
                "mimeType": JPEG_MIME_TYPE,
                "type": "photo",
                "purpose": purpose.value,
            },
        )

        media_record = {
            "horseId": horse_id,
            "type": "photo",
            "category": "conformation",
            "title": f"{purpose.value.capitalize()} Photo",
            "fileUrl": target.read_url,
            "storagePath": target.storage_path,
            "fileName": file_name,
            "fileSize": len(data),
            "mimeType": JPEG_MIME_TYPE,
        }
        try:
            await self.uploader.post_json(endpoints.HORSE_MEDIA, media_record)
        except httpx.HTTPError as e:
            raise MetadataCreationFailedError(
                f"Failed to create media record: {e}",
                context={"horse_id": horse_id, "storage_path": target.storage_path},
            ) from e

        try:
            await self.uploader.patch_json(
                endpoints.horse(horse_id),
                {purpose.path_field: target.storage_path},
            )
        except httpx.HTTPError as e:
            raise ParentUpdateFailedError(
                f"Failed to update horse: {e}",
                context={"horse_id": horse_id, "storage_path": target.storage_path},
            ) from e

        logger.info(
            "Horse photo attached: horse_id=%s, purpose=%s, storage_path=%s",
            horse_id,
            purpose.value,
            target.storage_path,
        )
        return target.storage_path

    async def remove_horse_photo(self, horse_id: str, purpose: PhotoPurpose) -> None:
        """Clear a horse's cover or avatar photo path.

        Raises:
            ParentUpdateFailedError: If the horse update fails
        """
        try:
            await self.uploader.patch_json(endpoints.horse(horse_id), {purpose.path_field: None})
        except httpx.HTTPError as e:
            raise ParentUpdateFailedError(
                f"Failed to update horse: {e}",
                context={"horse_id": horse_id},
            ) from e
        logger.info("Horse photo removed: horse_id=%s, purpose=%s", horse_id, purpose.value)

    def _evidence_body(self, horse_id: str | None, instance_id: str, step_id: str) -> dict[str, Any]:
        return {
            "horseId": horse_id,
            "instanceId": instance_id,
            "stepId": step_id,
            "fileName": f"evidence_{uuid.uuid4()}.jpg",
            "mimeType": JPEG_MIME_TYPE,
        }

    async def upload_evidence_photo(
        self,
        image: Image.Image,
        horse_id: str | None,
        instance_id: str,
        step_id: str,
    ) -> str:
        """Upload one routine step evidence photo.

        Returns:
            Read URL of the uploaded photo
        """
        target = await self.compress_and_upload(
            image,
            endpoints.routine_step_upload_url(instance_id, step_id),
            self._evidence_body(horse_id, instance_id, step_id),
            preset=EVIDENCE_PHOTO,
        )
        return target.read_url

    async def upload_evidence_batch(
        self,
        images: list[Image.Image],
        horse_id: str | None,
        instance_id: str,
        step_id: str,
    ) -> BatchUploadResult:
        """Upload several evidence photos concurrently.

        Completion order is not preserved. Every failed photo is counted in
        failed_count, but only retryable upload failures (signed-URL request,
        incomplete response, storage PUT) are queued, one item per photo.
        Photos that cannot be compressed or exceed the size ceiling are not
        queued, since replaying them cannot succeed.

        Returns:
            BatchUploadResult with read URLs, failure count and queued ids
        """
        endpoint = endpoints.routine_step_upload_url(instance_id, step_id)
        semaphore = asyncio.Semaphore(self.batch_concurrency)
        result = BatchUploadResult()

        async def upload_one(image: Image.Image) -> None:
            body = self._evidence_body(horse_id, instance_id, step_id)
            async with semaphore:
                # Compression runs on the event loop; only network I/O overlaps.
                try:
                    data = self._compress(image, EVIDENCE_PHOTO)
                    target = await self.uploader.upload(data, endpoint, body)
                except ImageUploadError as e:
                    result.failed_count += 1
                    logger.warning("Evidence photo failed: %s", e.message, extra=e.to_log_dict())
                    if e.retryable:
                        queued_id = self._queue_failed(data, endpoint, body)
                        if queued_id:
                            result.queued_ids.append(queued_id)
                else:
                    result.urls.append(target.read_url)

        await asyncio.gather(*(upload_one(image) for image in images))

        logger.info(
            "Evidence batch complete: instance_id=%s, step_id=%s, uploaded=%d, failed=%d",
            instance_id,
            step_id,
            len(result.urls),
            result.failed_count,
        )
        return result

    def _queue_failed(self, data: bytes, endpoint: str, body: dict[str, Any]) -> str | None:
        """Hand a failed upload to the background queue."""
        if self.queue is None:
            return None

        item = self.queue.enqueue(self.queue.create_item(data, endpoint, body))
        log_upload_queued(logger, item.id, endpoint, len(self.queue))
        return item.id
