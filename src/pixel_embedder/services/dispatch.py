"""Single-write dispatch with bounded acknowledgement."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from pixel_embedder.domain.pixels import DispatchResult, ErrorKind, Write
from pixel_embedder.services.pacing import RateGovernor

_logger = logging.getLogger(__name__)


class PixelChannel(Protocol):
    """Interface for submitting writes to the remote canvas."""

    async def submit(self, write: Write) -> DispatchResult:
        """Submit a write and return the remote's classified reply."""


@dataclass
class Dispatcher:
    """Sends one write at a time and classifies the outcome."""

    channel: PixelChannel
    governor: RateGovernor
    ack_timeout: float = 8.0

    async def send(self, write: Write) -> DispatchResult:
        """Submit a write, waiting at most ack_timeout for the reply."""
        try:
            result = await asyncio.wait_for(
                self.channel.submit(write), timeout=self.ack_timeout
            )
        except TimeoutError:
            # The write may still land remotely; a late reply is discarded.
            self.governor.record_dispatch()
            _logger.warning(
                "Placement timeout at (%s, %s) after %ss",
                write.x,
                write.y,
                self.ack_timeout,
            )
            return DispatchResult.failure(
                ErrorKind.TIMEOUT, f"no acknowledgement within {self.ack_timeout}s"
            )

        self.governor.record_dispatch()
        if not result.ok and result.error is None:
            return DispatchResult.failure(ErrorKind.UNKNOWN, result.message)
        return result
