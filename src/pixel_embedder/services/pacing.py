"""Dispatch pacing under burst and minimum-interval limits."""

import asyncio
import logging
import random
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]

_LONG_WINDOW_SECONDS = 60.0

_logger = logging.getLogger(__name__)


@dataclass
class RateGovernor:
    """Sliding-window pacer for a single sequential dispatcher.

    ``pace()`` runs right before every dispatch attempt and ``record_dispatch()``
    once the attempt has actually been sent. Only recorded attempts occupy the
    burst window, so the tracker never holds more than ``burst_limit`` entries
    inside any ``burst_window`` span.
    """

    burst_limit: int = 15
    burst_window: float = 10.0
    safety_buffer: float = 2.0
    min_interval: float = 0.4
    jitter_min: float = 0.05
    jitter_max: float = 0.15
    clock: Clock = time.monotonic
    sleep: Sleeper = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)
    _burst: deque[float] = field(default_factory=deque, init=False, repr=False)
    _history: deque[float] = field(default_factory=deque, init=False, repr=False)
    _last_dispatch: float | None = field(default=None, init=False, repr=False)

    async def pace(self) -> None:
        """Wait until the next dispatch is allowed."""
        now = self.clock()
        self._evict(now)

        if len(self._burst) >= self.burst_limit:
            wait = self.burst_window - (now - self._burst[0]) + self.safety_buffer
            if wait > 0:
                _logger.info("Burst protection: waiting %.1fs", wait)
                await self.sleep(wait)
                self._evict(self.clock())

        if self._last_dispatch is not None:
            elapsed = self.clock() - self._last_dispatch
            if elapsed < self.min_interval:
                await self.sleep(self.min_interval - elapsed)

        jitter = self.rng.uniform(self.jitter_min, self.jitter_max)
        if jitter > 0:
            await self.sleep(jitter)

        self._last_dispatch = self.clock()

    def record_dispatch(self) -> None:
        """Record an attempt that reached the remote."""
        now = self.clock()
        self._history.append(now)
        self._burst.append(now)
        self._evict(now)

    def reset(self) -> None:
        """Drop all pacing state for a fresh run."""
        self._burst.clear()
        self._history.clear()
        self._last_dispatch = None

    def reset_burst(self) -> None:
        """Forget the local burst window after the remote reported a burst."""
        self._burst.clear()

    def burst_used(self) -> int:
        """Return the number of dispatches inside the current burst window."""
        self._evict(self.clock())
        return len(self._burst)

    def dispatches_last_minute(self) -> int:
        """Return the number of dispatches in the last sixty seconds."""
        self._evict(self.clock())
        return len(self._history)

    def _evict(self, now: float) -> None:
        while self._burst and now - self._burst[0] >= self.burst_window:
            self._burst.popleft()
        while self._history and now - self._history[0] >= _LONG_WINDOW_SECONDS:
            self._history.popleft()
