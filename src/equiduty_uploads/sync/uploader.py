"""Async signed-URL uploader with retry on transient network errors."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from equiduty_uploads import __version__
from equiduty_uploads.errors import (
    MissingReadUrlError,
    MissingStoragePathError,
    MissingUploadUrlError,
    UploadFailedError,
)
from equiduty_uploads.imaging import MAX_UPLOAD_BYTES, ensure_upload_size
from equiduty_uploads.logging import log_upload_failed, log_upload_success
from equiduty_uploads.sync.network import NetworkQuality, StaticNetworkQuality

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"


@dataclass
class UploadTarget:
    """Where an uploaded photo ended up."""

    read_url: str
    storage_path: str
    retries: int = 0


class UploadUrlResponse(BaseModel):
    """Body returned by the signed-URL endpoints."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    upload_url: str | None = Field(default=None, alias="uploadUrl")
    read_url: str | None = Field(default=None, alias="readUrl")
    storage_path: str | None = Field(default=None, alias="storagePath")


class SignedUrlUploader:
    """Uploads bytes to object storage through backend-issued signed URLs.

    Two httpx.AsyncClient instances are used: one for the authenticated
    EquiDuty API and one for storage PUTs, so the API token never reaches
    the storage host. Only the PUT is retried here (timeouts and dropped
    connections, with exponential backoff); HTTP error statuses are terminal
    and left to the background queue.
    """

    def __init__(
        self,
        api_base_url: str,
        api_token: str = "",
        network: NetworkQuality | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            api_base_url: Base URL of the EquiDuty API (e.g., https://api.equiduty.com)
            api_token: Bearer token for API requests
            network: Network quality signal used to scale timeouts
            timeout: Base per-request timeout in seconds
            max_retries: Additional PUT attempts on transient failures
            backoff_base: Delay before the first retry; doubles each retry
            max_upload_bytes: Payload ceiling checked before any request
            transport: Optional httpx transport (tests)
        """
        self.network = network or StaticNetworkQuality()
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.max_upload_bytes = max_upload_bytes

        user_agent = f"equiduty-uploads/{__version__}"
        api_headers = {"User-Agent": user_agent}
        if api_token:
            api_headers["Authorization"] = f"Bearer {api_token}"

        self._api = httpx.AsyncClient(
            base_url=api_base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            headers=api_headers,
            transport=transport,
        )
        self._storage = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    def _request_timeout(self) -> httpx.Timeout:
        """Per-request timeout scaled by current network quality."""
        return httpx.Timeout(self.timeout * self.network.timeout_multiplier)

    def backoff_delay(self, retry: int) -> float:
        """Delay before the given retry (1-based): 1s, 2s, 4s with the default base."""
        return self.backoff_base * 2 ** (retry - 1)

    async def upload(self, data: bytes, endpoint: str, body: dict[str, Any]) -> UploadTarget:
        """Upload compressed image bytes via a freshly issued signed URL.

        Args:
            data: Compressed JPEG bytes
            endpoint: API path that issues the signed URL
            body: File metadata sent to the signed-URL endpoint

        Returns:
            UploadTarget with the read URL, storage path and PUT retries used

        Raises:
            ImageTooLargeError: If data is above the size ceiling (no request made)
            UploadFailedError: If the signed URL request or the PUT fails
        """
        ensure_upload_size(data, self.max_upload_bytes)

        started = time.monotonic()
        signed = await self.request_upload_url(endpoint, body)

        if not signed.upload_url:
            raise MissingUploadUrlError()
        if not signed.read_url:
            raise MissingReadUrlError()
        if not signed.storage_path:
            raise MissingStoragePathError()

        retries = await self.put_to_signed_url(signed.upload_url, data)

        log_upload_success(
            logger,
            storage_path=signed.storage_path,
            size_bytes=len(data),
            duration_ms=(time.monotonic() - started) * 1000,
            retries=retries,
        )
        return UploadTarget(
            read_url=signed.read_url,
            storage_path=signed.storage_path,
            retries=retries,
        )

    async def request_upload_url(self, endpoint: str, body: dict[str, Any]) -> UploadUrlResponse:
        """Ask the API for a short-lived signed write URL.

        Raises:
            UploadFailedError: On transport errors, non-2xx or an unparseable body
        """
        try:
            response = await self._api.post(endpoint, json=body, timeout=self._request_timeout())
            response.raise_for_status()
            return UploadUrlResponse.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise UploadFailedError(
                f"Failed to get upload URL: HTTP {e.response.status_code}",
                context={"endpoint": endpoint, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise UploadFailedError(
                f"Failed to get upload URL: {e}",
                context={"endpoint": endpoint},
            ) from e
        except (ValueError, ValidationError) as e:
            raise UploadFailedError(
                f"Invalid upload URL response: {e}",
                context={"endpoint": endpoint},
            ) from e

    async def put_to_signed_url(self, url: str, data: bytes) -> int:
        """PUT bytes to a signed storage URL with retry.

        Timeouts and network errors are retried up to max_retries times with
        exponential backoff. Any HTTP status outside 2xx fails immediately.

        Args:
            url: Signed write URL
            data: Bytes to upload

        Returns:
            Number of retries used

        Raises:
            UploadFailedError: On a non-2xx status or once retries are exhausted
        """
        headers = {
            "Content-Type": JPEG_CONTENT_TYPE,
            "Content-Length": str(len(data)),
        }
        retries = 0

        while True:
            try:
                response = await self._storage.put(
                    url,
                    content=data,
                    headers=headers,
                    timeout=self._request_timeout(),
                )
                break
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                log_upload_failed(
                    logger,
                    error_code="network",
                    error=type(e).__name__,
                    attempt_count=retries + 1,
                )
                if retries >= self.max_retries:
                    raise UploadFailedError(
                        f"Storage upload failed after {retries + 1} attempts: {type(e).__name__}",
                        context={"attempts": retries + 1},
                    ) from e
                retries += 1
                await asyncio.sleep(self.backoff_delay(retries))
            except httpx.HTTPError as e:
                raise UploadFailedError(f"Storage upload failed: {e}") from e

        if not response.is_success:
            raise UploadFailedError(
                f"Storage upload failed with HTTP {response.status_code}",
                context={"status_code": response.status_code},
            )

        logger.debug("Storage PUT complete: bytes=%d, retries=%d", len(data), retries)
        return retries

    async def post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST JSON to the API and return the decoded body ({} when empty).

        Raises:
            httpx.HTTPError: On transport errors or a non-2xx status
        """
        response = await self._api.post(path, json=body, timeout=self._request_timeout())
        response.raise_for_status()
        return response.json() if response.content else {}

    async def patch_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """PATCH JSON to the API and return the decoded body ({} when empty).

        Raises:
            httpx.HTTPError: On transport errors or a non-2xx status
        """
        response = await self._api.patch(path, json=body, timeout=self._request_timeout())
        response.raise_for_status()
        return response.json() if response.content else {}

    async def close(self) -> None:
        """Close the HTTP clients and release resources."""
        await self._api.aclose()
        await self._storage.aclose()

    async def __aenter__(self) -> "SignedUrlUploader":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
