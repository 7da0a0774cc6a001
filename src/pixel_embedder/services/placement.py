"""Placement queue controller."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import uuid4

from pixel_embedder.domain.pixels import DispatchResult, ErrorKind, Write
from pixel_embedder.domain.sessions import PlacementStatus, RunState, SessionRecord
from pixel_embedder.services.differ import RegionDiffer
from pixel_embedder.services.dispatch import Dispatcher
from pixel_embedder.services.pacing import Clock, RateGovernor, Sleeper
from pixel_embedder.services.rasterizer import estimate_minutes
from pixel_embedder.services.recovery import ValidationRecoverer, merge
from pixel_embedder.services.session_store import SessionStore, now_ms

_logger = logging.getLogger(__name__)


class PlacementBusyError(RuntimeError):
    """Raised when a run is requested while another one is in progress."""


class NoSessionError(LookupError):
    """Raised when there is no stored session to act on."""


def new_session_id() -> str:
    """Generate an opaque session identifier."""
    return f"embed_{now_ms()}_{uuid4().hex[:9]}"


@dataclass
class PlacementController:
    """State machine that drains a write queue through the dispatcher.

    States move ``IDLE -> RUNNING -> {COMPLETED, PAUSED, HALTED}``; any
    terminal state may start a new or resumed run. The controller owns the
    in-memory session for the duration of a run and checkpoints it to the
    store every ``checkpoint_every`` successes and after every failure.
    """

    dispatcher: Dispatcher
    differ: RegionDiffer
    recoverer: ValidationRecoverer
    store: SessionStore
    diff_threshold: int = 10
    checkpoint_every: int = 10
    progress_every: int = 50
    burst_cooldown: float = 15.0
    rate_cooldown: float = 10.0
    failure_cooldown: float = 1.0
    sleep: Sleeper = asyncio.sleep
    clock: Clock = time.monotonic
    id_factory: Callable[[], str] = field(default=new_session_id)
    state: RunState = field(default=RunState.IDLE, init=False)
    _queue: deque[Write] = field(default_factory=deque, init=False, repr=False)
    _original_targets: list[Write] = field(default_factory=list, init=False)
    _session_id: str | None = field(default=None, init=False)
    _placed: int = field(default=0, init=False)
    _errors: int = field(default=0, init=False)
    _skipped: int = field(default=0, init=False)
    _running: bool = field(default=False, init=False)
    _reserved: bool = field(default=False, init=False)

    @property
    def governor(self) -> RateGovernor:
        """Return the pacer shared with the dispatcher."""
        return self.dispatcher.governor

    @property
    def busy(self) -> bool:
        """Return True while a run is in progress or reserved."""
        return self.state is RunState.RUNNING or self._reserved

    @property
    def session_id(self) -> str | None:
        """Return the id of the current or last session."""
        return self._session_id

    @property
    def queue(self) -> list[Write]:
        """Return a copy of the remaining queue in dispatch order."""
        return list(self._queue)

    @property
    def placed_count(self) -> int:
        """Return the number of writes placed in this session."""
        return self._placed

    @property
    def error_count(self) -> int:
        """Return the number of failed dispatches in this session."""
        return self._errors

    @property
    def skipped_count(self) -> int:
        """Return the number of writes skipped as already correct."""
        return self._skipped

    async def start(self, writes: list[Write], check_existing: bool = True) -> RunState:
        """Start a new session for writes and run it to a terminal state."""
        self._ensure_idle()
        self._begin_run()
        self._session_id = self.id_factory()
        self._original_targets = list(writes)
        self._placed = 0
        self._errors = 0
        self._skipped = 0
        _logger.info(
            "Starting session %s with %s pixels (check existing: %s)",
            self._session_id,
            len(writes),
            check_existing,
        )

        pending = list(writes)
        if check_existing and len(writes) > self.diff_threshold:
            result = await self.differ.filter(pending)
            pending = result.pending
            self._skipped = result.skipped
            _logger.info("Final pixels needed after filtering: %s", len(pending))

        self._queue = deque(pending)
        if not self._queue:
            _logger.info("All pixels already correct, nothing to do")
            self._running = False
            self._finish()
            return self.state

        self._checkpoint()
        await self._run()
        return self.state

    async def resume(self, validate: bool = False) -> RunState:
        """Continue the stored session, optionally recovering missing writes first."""
        self._ensure_idle()
        record = self.store.load()
        can_validate = bool(validate and record and record.original_targets)
        if record is None or not (record.queue or can_validate):
            raise NoSessionError("No session to resume")

        self._begin_run()
        self._session_id = record.session_id
        self._queue = deque(record.queue)
        self._original_targets = list(record.original_targets or [])
        self._placed = record.placed_count
        self._errors = record.error_count
        self._skipped = record.skipped_count
        _logger.info(
            "Resuming session %s: %s completed, %s remaining",
            record.session_id,
            record.placed_count,
            len(record.queue),
        )

        if can_validate:
            recovered = await self.recoverer.recover(self._original_targets)
            if recovered:
                self._queue = deque(merge(recovered, list(self._queue)))
                _logger.info(
                    "Added %s missing pixels, %s total to place",
                    len(recovered),
                    len(self._queue),
                )

        if not self._queue:
            self._running = False
            self._finish()
            return self.state

        self._checkpoint()
        await self._run()
        return self.state

    async def validate(self) -> list[Write]:
        """Place original targets that are missing remotely in a fresh session.

        Returns the writes found missing; an empty list means the image is
        complete and any stored session is cleared.
        """
        self._ensure_idle()
        record = self.store.load()
        if record is not None and record.original_targets:
            targets = list(record.original_targets)
        else:
            targets = list(self._original_targets)
        if not targets:
            raise NoSessionError("No original pixels to validate")

        self._begin_run()
        missing = await self.recoverer.recover(targets)
        if record is not None:
            self._placed = record.placed_count
            self._errors = record.error_count
            self._skipped = record.skipped_count
        self._session_id = self.id_factory()
        self._original_targets = targets
        self._queue = deque(missing)
        if not self._queue:
            self._running = False
            self._finish()
            return []

        _logger.info("Starting placement of %s missing pixels", len(missing))
        self._checkpoint()
        await self._run()
        return missing

    def reserve(self) -> None:
        """Claim the controller for a run that is about to be scheduled."""
        if self.busy:
            raise PlacementBusyError(
                "Already placing pixels, stop the current run first"
            )
        self._reserved = True

    def release(self) -> None:
        """Drop a reservation that did not turn into a run."""
        self._reserved = False

    def stop(self) -> bool:
        """Ask the running loop to pause after the in-flight write."""
        if not self._running:
            return False
        _logger.info("Stopping pixel placement")
        self._running = False
        return True

    def check_session(self) -> SessionRecord | None:
        """Return the stored session, if any."""
        return self.store.load()

    def clear_session(self) -> None:
        """Forget the stored and in-memory session."""
        if self.busy:
            raise PlacementBusyError("Stop the current run before clearing it")
        self.store.clear()
        self._queue = deque()
        self._original_targets = []
        self._placed = 0
        self._errors = 0
        self._skipped = 0
        self._session_id = None
        self.state = RunState.IDLE
        _logger.info("Session cleared")

    def status(self) -> PlacementStatus:
        """Return a snapshot of progress and pacing."""
        record = self.store.load()
        return PlacementStatus(
            state=self.state,
            session_id=self._session_id,
            queue_length=len(self._queue),
            original_targets_count=len(self._original_targets),
            placed_count=self._placed,
            error_count=self._errors,
            skipped_count=self._skipped,
            burst_used=self.governor.burst_used(),
            burst_limit=self.governor.burst_limit,
            dispatches_last_minute=self.governor.dispatches_last_minute(),
            min_interval_seconds=self.governor.min_interval,
            has_resumable_session=record is not None and bool(record.queue),
        )

    def _ensure_idle(self) -> None:
        if self.state is RunState.RUNNING:
            raise PlacementBusyError(
                "Already placing pixels, stop the current run first"
            )

    def _begin_run(self) -> None:
        self._reserved = False
        self.state = RunState.RUNNING
        self._running = True
        self.governor.reset()

    async def _run(self) -> None:
        try:
            _logger.info(
                "Placing %s pixels, estimated %s minutes",
                len(self._queue),
                estimate_minutes(len(self._queue), self.governor.min_interval),
            )
            await self._drain()
        except BaseException:
            self._interrupt()
            raise
        self._running = False
        self._finish()

    def _interrupt(self) -> None:
        # The in-flight write is not in the queue; original targets stay
        # stored so validate() can recover it.
        self._running = False
        self.state = RunState.PAUSED
        self._checkpoint()
        _logger.warning(
            "Session %s interrupted with %s remaining",
            self._session_id,
            len(self._queue),
        )

    async def _drain(self) -> None:
        started = self.clock()
        while self._running and self._queue:
            write = self._queue.popleft()
            await self.governor.pace()
            result = await self.dispatcher.send(write)
            if result.ok:
                self._placed += 1
                if self._placed % self.checkpoint_every == 0:
                    self._checkpoint()
                if self._placed % self.progress_every == 0:
                    self._log_progress(started)
                continue

            self._errors += 1
            _logger.error(
                "Failed pixel at (%s, %s): %s %s",
                write.x,
                write.y,
                result.error,
                result.message,
            )
            self._checkpoint()
            if result.error is ErrorKind.QUOTA_EXHAUSTED:
                _logger.error(
                    "Out of credits, halting with %s remaining", len(self._queue)
                )
                self.state = RunState.HALTED
                return
            await self._cool_down(result)

    async def _cool_down(self, result: DispatchResult) -> None:
        if result.error is ErrorKind.BURST_LIMITED:
            _logger.warning("Burst limit hit, extended cooldown")
            self.governor.reset_burst()
            await self.sleep(self.burst_cooldown)
        elif result.error is ErrorKind.RATE_LIMITED:
            _logger.warning("Rate limited, waiting")
            await self.sleep(self.rate_cooldown)
        else:
            await self.sleep(self.failure_cooldown)

    def _finish(self) -> None:
        if self.state is RunState.HALTED:
            self._checkpoint()
        elif not self._queue:
            self.state = RunState.COMPLETED
            self.store.clear()
        else:
            self.state = RunState.PAUSED
            self._checkpoint()
        _logger.info(
            "Session %s %s: %s placed, %s skipped, %s errors, %s remaining",
            self._session_id,
            self.state,
            self._placed,
            self._skipped,
            self._errors,
            len(self._queue),
        )

    def _checkpoint(self) -> None:
        if self._session_id is None:
            return
        self.store.save(
            SessionRecord(
                session_id=self._session_id,
                queue=list(self._queue),
                original_targets=self._original_targets or None,
                placed_count=self._placed,
                error_count=self._errors,
                skipped_count=self._skipped,
                timestamp=self.store.clock_ms(),
                active=self._running,
            )
        )

    def _log_progress(self, started: float) -> None:
        elapsed_minutes = max(self.clock() - started, 1e-9) / 60
        _logger.info(
            "%s placed | %s remaining | %s/min",
            self._placed,
            len(self._queue),
            round(self._placed / elapsed_minutes),
        )
