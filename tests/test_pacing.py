"""Tests for the dispatch rate governor."""

import asyncio
import random

import pytest

from pixel_embedder.services.pacing import RateGovernor
from tests.conftest import FakeClock


def _governor(clock: FakeClock, **kwargs: object) -> RateGovernor:
    options: dict[str, object] = {
        "jitter_min": 0.0,
        "jitter_max": 0.0,
        "rng": random.Random(1),
    }
    options.update(kwargs)
    return RateGovernor(
        clock=clock, sleep=clock.sleep, **options  # type: ignore[arg-type]
    )


async def _dispatch(governor: RateGovernor, count: int) -> None:
    for _ in range(count):
        await governor.pace()
        governor.record_dispatch()


def test_full_burst_waits_for_window_plus_buffer() -> None:
    clock = FakeClock()
    governor = _governor(
        clock, burst_limit=3, burst_window=10.0, safety_buffer=2.0, min_interval=0.0
    )

    asyncio.run(_dispatch(governor, 4))

    assert clock.sleeps == [12.0]
    assert clock.now == 12.0
    assert governor.burst_used() == 1


def test_min_interval_is_enforced_between_dispatches() -> None:
    clock = FakeClock()
    governor = _governor(clock, min_interval=0.4)

    async def scenario() -> None:
        await governor.pace()
        governor.record_dispatch()
        clock.advance(0.1)
        await governor.pace()

    asyncio.run(scenario())

    assert clock.sleeps == [pytest.approx(0.3)]


def test_no_wait_when_interval_already_elapsed() -> None:
    clock = FakeClock()
    governor = _governor(clock, min_interval=0.4)

    async def scenario() -> None:
        await governor.pace()
        governor.record_dispatch()
        clock.advance(1.0)
        await governor.pace()

    asyncio.run(scenario())

    assert clock.sleeps == []


def test_jitter_is_added_within_bounds() -> None:
    clock = FakeClock()
    governor = _governor(clock, jitter_min=0.05, jitter_max=0.15)

    asyncio.run(governor.pace())

    assert len(clock.sleeps) == 1
    assert 0.05 <= clock.sleeps[0] <= 0.15


def test_randomized_dispatches_respect_burst_and_interval() -> None:
    clock = FakeClock()
    rng = random.Random(42)
    governor = _governor(
        clock,
        burst_limit=4,
        burst_window=1.0,
        safety_buffer=0.05,
        min_interval=0.1,
        jitter_min=0.0,
        jitter_max=0.02,
        rng=random.Random(3),
    )
    times: list[float] = []

    async def scenario() -> None:
        for _ in range(200):
            if rng.random() < 0.3:
                clock.advance(rng.uniform(0.0, 0.5))
            await governor.pace()
            times.append(clock())
            governor.record_dispatch()

    asyncio.run(scenario())

    for earlier, later in zip(times, times[1:], strict=False):
        assert later - earlier >= 0.1 - 1e-9
    for index, start in enumerate(times):
        in_window = [t for t in times[index:] if t - start < 1.0]
        assert len(in_window) <= 4


def test_reset_burst_and_reset() -> None:
    clock = FakeClock()
    governor = _governor(clock, min_interval=0.0)

    asyncio.run(_dispatch(governor, 3))
    assert governor.burst_used() == 3
    assert governor.dispatches_last_minute() == 3

    governor.reset_burst()
    assert governor.burst_used() == 0
    assert governor.dispatches_last_minute() == 3

    governor.reset()
    assert governor.dispatches_last_minute() == 0


def test_counters_expire_with_their_windows() -> None:
    clock = FakeClock()
    governor = _governor(clock, min_interval=0.0)

    asyncio.run(_dispatch(governor, 2))
    clock.advance(10.0)
    assert governor.burst_used() == 0
    assert governor.dispatches_last_minute() == 2

    clock.advance(50.0)
    assert governor.dispatches_last_minute() == 0
