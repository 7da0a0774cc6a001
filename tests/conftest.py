"""Shared test fixtures."""

import asyncio
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from pixel_embedder.config import Settings
from pixel_embedder.containers import AppContainer
from pixel_embedder.domain.pixels import DispatchResult, Write
from pixel_embedder.services.differ import (
    RegionDiffer,
    RegionSource,
    RegionThrottledError,
)
from pixel_embedder.services.dispatch import Dispatcher, PixelChannel
from pixel_embedder.services.pacing import RateGovernor
from pixel_embedder.services.placement import PlacementController
from pixel_embedder.services.rasterizer import Rasterizer
from pixel_embedder.services.recovery import ValidationRecoverer
from pixel_embedder.services.session_store import SessionBackend, SessionStore

NOW_MS = 1_700_000_000_000


@dataclass
class FakeClock:
    """Manually advanced monotonic clock with an instant sleep."""

    now: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakePixelChannel(PixelChannel):
    """Fake canvas channel that applies successful writes to a dict."""

    clock: FakeClock | None = None
    canvas: dict[tuple[int, int], str] = field(default_factory=dict)
    replies: dict[int, DispatchResult] = field(default_factory=dict)
    hang: set[int] = field(default_factory=set)
    on_submit: Callable[[int], None] | None = None
    submitted: list[Write] = field(default_factory=list)
    times: list[float] = field(default_factory=list)

    async def submit(self, write: Write) -> DispatchResult:
        self.submitted.append(write)
        attempt = len(self.submitted)
        if self.clock is not None:
            self.times.append(self.clock())
        if self.on_submit is not None:
            self.on_submit(attempt)
        if attempt in self.hang:
            await asyncio.Event().wait()
        reply = self.replies.get(attempt, DispatchResult.success())
        if reply.ok:
            self.canvas[(write.x, write.y)] = write.color
        return reply


@dataclass
class FakeRegionSource(RegionSource):
    """Fake region source reading from a shared canvas dict."""

    canvas: dict[tuple[int, int], str] = field(default_factory=dict)
    throttled: set[tuple[int, int]] = field(default_factory=set)
    failing: set[tuple[int, int]] = field(default_factory=set)
    queries: list[tuple[int, int, int, int]] = field(default_factory=list)

    async def query_region(
        self, x1: int, y1: int, x2: int, y2: int
    ) -> list[dict[str, object]]:
        self.queries.append((x1, y1, x2, y2))
        if (x1, y1) in self.throttled:
            raise RegionThrottledError("try later")
        if (x1, y1) in self.failing:
            raise RuntimeError("region backend down")
        return [
            {"x": x, "y": y, "color": f"#{color.lower()}"}
            for (x, y), color in self.canvas.items()
            if x1 <= x <= x2 and y1 <= y <= y2
        ]


@dataclass
class InMemorySessionBackend(SessionBackend):
    """In-memory session backend that keeps a history of saves."""

    slots: dict[str, dict[str, object]] = field(default_factory=dict)
    saves: list[dict[str, object]] = field(default_factory=list)
    fail: bool = False

    def read(self, slot: str) -> dict[str, object] | None:
        if self.fail:
            raise OSError("storage unavailable")
        return self.slots.get(slot)

    def write(self, slot: str, payload: dict[str, object]) -> None:
        if self.fail:
            raise OSError("storage unavailable")
        self.slots[slot] = payload
        self.saves.append(payload)

    def delete(self, slot: str) -> None:
        if self.fail:
            raise OSError("storage unavailable")
        self.slots.pop(slot, None)


@dataclass
class PlacementRig:
    """A controller wired to fakes, plus handles on every fake."""

    controller: PlacementController
    channel: FakePixelChannel
    source: FakeRegionSource
    clock: FakeClock
    backend: InMemorySessionBackend
    store: SessionStore


def make_rig(  # noqa: PLR0913
    *,
    canvas: dict[tuple[int, int], str] | None = None,
    backend: InMemorySessionBackend | None = None,
    burst_limit: int = 15,
    burst_window: float = 10.0,
    safety_buffer: float = 2.0,
    min_interval: float = 0.4,
    ack_timeout: float = 8.0,
) -> PlacementRig:
    """Build a placement controller whose collaborators are all fakes."""
    clock = FakeClock()
    shared_canvas = canvas if canvas is not None else {}
    channel = FakePixelChannel(clock=clock, canvas=shared_canvas)
    source = FakeRegionSource(canvas=shared_canvas)
    resolved_backend = backend or InMemorySessionBackend()
    governor = RateGovernor(
        burst_limit=burst_limit,
        burst_window=burst_window,
        safety_buffer=safety_buffer,
        min_interval=min_interval,
        jitter_min=0.0,
        jitter_max=0.0,
        clock=clock,
        sleep=clock.sleep,
        rng=random.Random(7),
    )
    differ = RegionDiffer(
        source=source,
        grid_width=1000,
        grid_height=1000,
        sleep=clock.sleep,
    )
    store = SessionStore(backend=resolved_backend, clock_ms=lambda: NOW_MS)
    ids = iter(f"session-{index}" for index in range(1, 100))
    controller = PlacementController(
        dispatcher=Dispatcher(
            channel=channel, governor=governor, ack_timeout=ack_timeout
        ),
        differ=differ,
        recoverer=ValidationRecoverer(differ),
        store=store,
        sleep=clock.sleep,
        clock=clock,
        id_factory=lambda: next(ids),
    )
    return PlacementRig(
        controller=controller,
        channel=channel,
        source=source,
        clock=clock,
        backend=resolved_backend,
        store=store,
    )


def make_writes(count: int, color: str = "FF0000", y: int = 0) -> list[Write]:
    """Return count writes along a row."""
    return [Write(x=x, y=y, color=color) for x in range(count)]


def png_bytes(
    width: int, height: int, rgba: tuple[int, int, int, int] = (255, 0, 0, 255)
) -> bytes:
    """Encode a solid-colour PNG."""
    image = Image.new("RGBA", (width, height), rgba)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        canvas_base_url="https://canvas.test",
        control_token="control-token",
        session_dir=str(tmp_path / "sessions"),
    )


@pytest.fixture
def rig() -> PlacementRig:
    return make_rig()


@pytest.fixture
def container(settings: Settings, rig: PlacementRig) -> AppContainer:
    rasterizer = Rasterizer(
        grid_width=settings.grid_width,
        grid_height=settings.grid_height,
        min_interval_seconds=settings.min_interval_seconds,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        rasterizer=rasterizer,
        controller=rig.controller,
        close_resources=close_resources,
    )
