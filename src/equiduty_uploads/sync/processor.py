"""Background processor that drains the upload queue when the network allows."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from equiduty_uploads.errors import CompressionFailedError, ImageUploadError
from equiduty_uploads.imaging import EVIDENCE_PHOTO, CompressionPreset, compress_with_preset, decode_image
from equiduty_uploads.logging import log_state_change, log_upload_dropped, log_upload_failed
from equiduty_uploads.sync.network import NetworkQuality
from equiduty_uploads.sync.queue import QueuedUpload, UploadQueue
from equiduty_uploads.sync.uploader import SignedUrlUploader, UploadTarget

logger = logging.getLogger(__name__)


class ProcessorState(Enum):
    """State of the queue processor."""

    IDLE = "idle"
    PROCESSING = "processing"


@dataclass
class DrainReport:
    """Outcome of one pass over the queue, by queue item id."""

    succeeded: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.retried) + len(self.dropped)


class QueueProcessor:
    """Drains the upload queue front to back, one item at a time.

    A periodic check starts a drain only when the queue is non-empty, no
    drain is running and the network signal recommends uploads. Each item
    is decoded, recompressed and uploaded again through a fresh signed URL.
    A failure bumps the item's retry count, or drops it once max_retries is
    reached. Failures are logged only; nothing here reaches a UI.

    Dropped items may leave orphaned storage objects from partial uploads.
    Storage lifecycle rules clean those up.
    """

    def __init__(
        self,
        queue: UploadQueue,
        uploader: SignedUrlUploader,
        network: NetworkQuality,
        preset: CompressionPreset = EVIDENCE_PHOTO,
        check_interval: float = 30.0,
        item_delay: float = 1.0,
    ) -> None:
        """Initialize the processor.

        Args:
            queue: Upload queue to drain
            uploader: Signed-URL uploader used to replay uploads
            network: Network quality signal gating each drain
            preset: Compression preset applied when replaying
            check_interval: Seconds between periodic checks
            item_delay: Pause between items within one drain
        """
        self.queue = queue
        self.uploader = uploader
        self.network = network
        self.preset = preset
        self.check_interval = check_interval
        self.item_delay = item_delay

        self._state = ProcessorState.IDLE
        self._running = False

        self.total_succeeded = 0
        self.total_dropped = 0
        self.last_drain_at: datetime | None = None

    @property
    def state(self) -> ProcessorState:
        """Get current processor state."""
        return self._state

    @property
    def is_processing(self) -> bool:
        """True while a drain is in progress."""
        return self._state == ProcessorState.PROCESSING

    def _set_state(self, new_state: ProcessorState, trigger: str | None = None) -> None:
        if self._state != new_state:
            log_state_change(logger, self._state.value, new_state.value, trigger)
            self._state = new_state

    async def run_forever(self) -> None:
        """Run the periodic check loop until stop() is called.

        There is no cancellation token; the loop lives as long as the
        hosting process, which cancels the task at teardown.
        """
        self._running = True
        logger.info("Queue processor started: interval=%.1fs", self.check_interval)

        while self._running:
            try:
                await self.network.refresh()
                await self.check_and_process()
            except Exception:
                logger.exception("Queue processor check failed")

            await asyncio.sleep(self.check_interval)

    def stop(self) -> None:
        """Ask the periodic loop to exit after the current iteration."""
        self._running = False

    async def check_and_process(self) -> DrainReport | None:
        """Start a drain if the queue, the processor and the network allow it.

        Returns:
            DrainReport of the pass, or None when no drain was started
        """
        if self.is_processing:
            logger.debug("Drain already in progress, skipping check")
            return None

        self.queue.load()
        if len(self.queue) == 0:
            return None

        if not self.network.is_upload_recommended:
            logger.debug("Network not suitable for uploads, queue_size=%d", len(self.queue))
            return None

        return await self.drain(trigger="periodic_check")

    async def drain(self, trigger: str = "manual") -> DrainReport:
        """Process every queued item once, in order.

        Args:
            trigger: What started this drain, for the state-change log

        Returns:
            DrainReport listing succeeded, retried and dropped item ids
        """
        report = DrainReport()
        if self.is_processing:
            return report

        self._set_state(ProcessorState.PROCESSING, trigger)
        try:
            # Other processes may have queued items since the last look.
            self.queue.load()
            items = self.queue.items
            logger.info("Draining upload queue: size=%d", len(items))

            for index, item in enumerate(items):
                if index > 0 and self.item_delay > 0:
                    await asyncio.sleep(self.item_delay)

                try:
                    target = await self._replay(item)
                except ImageUploadError as e:
                    log_upload_failed(
                        logger,
                        error_code=e.error_code,
                        error=e.message,
                        attempt_count=item.retry_count + 1,
                        queue_id=item.id,
                    )
                    self._handle_failure(item, e.message, report)
                except Exception as e:
                    logger.exception("Unexpected error replaying queue_id=%s", item.id)
                    self._handle_failure(item, str(e), report)
                else:
                    logger.debug(
                        "Queued upload succeeded: queue_id=%s, storage_path=%s",
                        item.id,
                        target.storage_path,
                    )
                    report.succeeded.append(item.id)

            self.queue.dequeue_successful(report.succeeded)
        finally:
            self.total_succeeded += len(report.succeeded)
            self.total_dropped += len(report.dropped)
            self.last_drain_at = datetime.now(timezone.utc)
            self._set_state(ProcessorState.IDLE)

        logger.info(
            "Drain complete: succeeded=%d, retried=%d, dropped=%d, remaining=%d",
            len(report.succeeded),
            len(report.retried),
            len(report.dropped),
            len(self.queue),
        )
        return report

    async def _replay(self, item: QueuedUpload) -> UploadTarget:
        """Decode, recompress and upload a queued item."""
        # Pillow work runs on the event loop; only the network calls overlap.
        image = decode_image(item.image_bytes)
        data = compress_with_preset(image, self.preset)
        if data is None:
            raise CompressionFailedError()
        return await self.uploader.upload(data, item.endpoint, item.request_body)

    def _handle_failure(self, item: QueuedUpload, error: str, report: DrainReport) -> None:
        """Bump the retry count, or drop the item once retries are exhausted."""
        if item.retries_exhausted:
            self.queue.remove(item.id)
            log_upload_dropped(logger, item.id, item.retry_count, error)
            report.dropped.append(item.id)
        else:
            self.queue.bump_retry(item.id)
            report.retried.append(item.id)
