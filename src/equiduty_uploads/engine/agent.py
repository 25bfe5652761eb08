"""Upload agent wiring storage, queue, uploader, photo service and processor."""

import asyncio
import logging
from typing import Any

import httpx

from equiduty_uploads.config import Settings
from equiduty_uploads.services import PhotoUploadService
from equiduty_uploads.sync import (
    KeyValueStore,
    NetworkQuality,
    ProbeNetworkQuality,
    QueueProcessor,
    SignedUrlUploader,
    UploadQueue,
)

logger = logging.getLogger(__name__)


class UploadAgent:
    """Composition root for the upload subsystem.

    Builds every component once from Settings and hands them to each other
    through constructors. CLI commands and host applications create one
    agent per process and use its ``photos`` service for foreground uploads.

    Example:
        agent = UploadAgent(settings)
        await agent.start()
        # ... runs until stopped ...
        await agent.stop()
    """

    def __init__(
        self,
        config: Settings,
        network: NetworkQuality | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the agent.

        Args:
            config: Settings instance with all configuration
            network: Network quality signal; defaults to probing the API
            transport: Optional httpx transport shared by all clients (tests)
        """
        self.config = config

        self._store = KeyValueStore(config.queue_db_path)
        self.queue = UploadQueue(self._store, max_retries=config.queue_max_retries)
        self.queue.load()

        self.network = network or ProbeNetworkQuality(config.api_base_url, transport=transport)
        self.uploader = SignedUrlUploader(
            api_base_url=config.api_base_url,
            api_token=config.api_token,
            network=self.network,
            timeout=config.request_timeout,
            max_retries=config.put_max_retries,
            max_upload_bytes=config.max_upload_bytes,
            transport=transport,
        )
        self.photos = PhotoUploadService(
            self.uploader,
            queue=self.queue,
            batch_concurrency=config.batch_concurrency,
        )
        self.processor = QueueProcessor(
            self.queue,
            self.uploader,
            self.network,
            check_interval=config.queue_check_interval,
            item_delay=config.queue_item_delay,
        )

        self._running = False
        self._processor_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the background queue processor until stop() is called."""
        if self._running:
            return

        self._running = True
        logger.info(
            "Starting upload agent, data_dir=%s, queue_size=%d",
            self.config.data_path,
            len(self.queue),
        )

        self._processor_task = asyncio.create_task(self.processor.run_forever())
        try:
            await self._processor_task
        except asyncio.CancelledError:
            logger.debug("Queue processor task cancelled")

    async def stop(self) -> None:
        """Stop the processor and close resources."""
        self._running = False
        self.processor.stop()

        if self._processor_task and not self._processor_task.done():
            self._processor_task.cancel()
            try:
                await self._processor_task
            except asyncio.CancelledError:
                pass

        await self.close()
        logger.info("Upload agent stopped, queue_size=%d", len(self.queue))

    async def close(self) -> None:
        """Release HTTP clients and the database.

        The queue is not saved here; every queue change is already stored,
        and a save would overwrite items other processes queued meanwhile.
        """
        await self.uploader.close()
        if isinstance(self.network, ProbeNetworkQuality):
            await self.network.close()
        self._store.close()

    async def __aenter__(self) -> "UploadAgent":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def get_status(self) -> dict[str, Any]:
        """Get current agent status.

        Returns:
            Dictionary with processor state, queue stats and drain counters
        """
        last_drain = self.processor.last_drain_at
        return {
            "running": self._running,
            "processor_state": self.processor.state.value,
            "upload_recommended": self.network.is_upload_recommended,
            "timeout_multiplier": self.network.timeout_multiplier,
            "queue": self.queue.get_stats(),
            "succeeded": self.processor.total_succeeded,
            "dropped": self.processor.total_dropped,
            "last_drain": last_drain.isoformat() if last_drain else None,
            "data_dir": str(self.config.data_path),
        }
