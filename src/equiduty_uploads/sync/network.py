"""Network quality signal used to gate background uploads and scale timeouts."""

import logging
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

from equiduty_uploads import endpoints

logger = logging.getLogger(__name__)

# Round-trip thresholds for the health probe, in seconds
GOOD_LATENCY = 1.0
SLOW_LATENCY = 3.0


class NetworkQuality(Protocol):
    """Read-only view of current network conditions."""

    @property
    def is_upload_recommended(self) -> bool:
        """Whether background uploads should run now."""
        ...

    @property
    def timeout_multiplier(self) -> float:
        """Factor applied to per-request HTTP timeouts."""
        ...

    async def refresh(self) -> None:
        """Re-measure conditions; called before each background check."""
        ...


def classify_probe(status_code: int, latency: float) -> tuple[bool, float]:
    """Turn a health probe result into (upload recommended, timeout multiplier).

    Args:
        status_code: HTTP status of the health response
        latency: Round-trip time in seconds

    Returns:
        Tuple of (is_upload_recommended, timeout_multiplier)
    """
    if status_code >= 500:
        return False, 1.0
    if latency < GOOD_LATENCY:
        return True, 1.0
    if latency < SLOW_LATENCY:
        return True, 2.0
    return False, 3.0


@dataclass
class StaticNetworkQuality:
    """Fixed network quality, for tests and forced one-off drains."""

    is_upload_recommended: bool = True
    timeout_multiplier: float = 1.0

    async def refresh(self) -> None:
        """Nothing to measure."""


class ProbeNetworkQuality:
    """Network quality derived from probing the API health endpoint.

    Call refresh() before reading the properties; the processor does this
    on every periodic check. Until the first probe, uploads are not
    recommended and the multiplier is 1.0.
    """

    def __init__(
        self,
        api_base_url: str,
        probe_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the probe.

        Args:
            api_base_url: Base URL of the EquiDuty API
            probe_timeout: Timeout for the health request in seconds
            transport: Optional httpx transport (tests)
        """
        self._client = httpx.AsyncClient(
            base_url=api_base_url,
            timeout=httpx.Timeout(probe_timeout),
            transport=transport,
        )
        self._recommended = False
        self._multiplier = 1.0
        self.last_latency: float | None = None

    @property
    def is_upload_recommended(self) -> bool:
        return self._recommended

    @property
    def timeout_multiplier(self) -> float:
        return self._multiplier

    async def refresh(self) -> None:
        """Probe the API and update the recommendation and multiplier."""
        started = time.monotonic()
        try:
            response = await self._client.get(endpoints.HEALTH)
        except httpx.HTTPError as e:
            logger.debug("Network probe failed: %s", e)
            self._update(recommended=False, multiplier=self._multiplier, latency=None)
            return

        latency = time.monotonic() - started
        recommended, multiplier = classify_probe(response.status_code, latency)
        self._update(recommended=recommended, multiplier=multiplier, latency=latency)

    def _update(self, *, recommended: bool, multiplier: float, latency: float | None) -> None:
        if recommended != self._recommended:
            logger.info(
                "Upload recommendation changed: recommended=%s, latency=%s",
                recommended,
                f"{latency:.3f}s" if latency is not None else "unreachable",
            )
        self._recommended = recommended
        self._multiplier = multiplier
        self.last_latency = latency

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
