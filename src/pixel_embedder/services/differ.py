"""Region-batched comparison of writes against the remote canvas."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from pixel_embedder.domain.pixels import Region, Write, normalize_color
from pixel_embedder.services.pacing import Sleeper

_logger = logging.getLogger(__name__)


class RegionThrottledError(RuntimeError):
    """Raised by a region source when the remote asks to retry later."""


class RegionSource(Protocol):
    """Interface for reading the current state of a canvas region."""

    async def query_region(
        self, x1: int, y1: int, x2: int, y2: int
    ) -> list[dict[str, object]]:
        """Return existing {x, y, color} entries inside the inclusive bounds."""


@dataclass(frozen=True)
class DiffResult:
    """Writes that still need placement and how many were already correct."""

    pending: list[Write]
    skipped: int


def partition(
    writes: list[Write], size: int, grid_width: int, grid_height: int
) -> list[Region]:
    """Group writes into size x size tiles clipped to the grid."""
    regions: dict[tuple[int, int], Region] = {}
    for write in writes:
        key = ((write.x // size) * size, (write.y // size) * size)
        region = regions.get(key)
        if region is None:
            region = Region(
                x1=key[0],
                y1=key[1],
                x2=min(key[0] + size - 1, grid_width - 1),
                y2=min(key[1] + size - 1, grid_height - 1),
            )
            regions[key] = region
        region.members.append(write)
    return list(regions.values())


@dataclass
class RegionDiffer:
    """Drops writes whose colour already matches the remote canvas."""

    source: RegionSource
    grid_width: int
    grid_height: int
    region_size: int = 50
    region_pause: float = 0.2
    throttle_cooldown: float = 2.0
    sleep: Sleeper = asyncio.sleep

    def partition(self, writes: list[Write]) -> list[Region]:
        """Partition writes into this differ's regions."""
        return partition(writes, self.region_size, self.grid_width, self.grid_height)

    async def filter(self, writes: list[Write]) -> DiffResult:
        """Return the writes that are missing or differ remotely."""
        if not writes:
            return DiffResult(pending=[], skipped=0)

        regions = self.partition(writes)
        _logger.info(
            "Checking %s regions for %s pixels", len(regions), len(writes)
        )
        pending: list[Write] = []
        skipped = 0
        for index, region in enumerate(regions):
            try:
                existing = await self.source.query_region(
                    region.x1, region.y1, region.x2, region.y2
                )
            except RegionThrottledError:
                _logger.warning(
                    "Rate limited on region (%s, %s), keeping all %s pixels",
                    region.x1,
                    region.y1,
                    len(region.members),
                )
                pending.extend(region.members)
                await self.sleep(self.throttle_cooldown)
            except Exception as exc:
                _logger.warning(
                    "Could not check region (%s, %s), keeping all %s pixels: %s",
                    region.x1,
                    region.y1,
                    len(region.members),
                    exc,
                )
                pending.extend(region.members)
            else:
                lookup = _color_lookup(existing)
                for write in region.members:
                    if lookup.get((write.x, write.y)) == write.color:
                        skipped += 1
                    else:
                        pending.append(write)

            if index < len(regions) - 1:
                await self.sleep(self.region_pause)

        _logger.info(
            "Check complete: %s pixels need placement, %s already correct",
            len(pending),
            skipped,
        )
        return DiffResult(pending=pending, skipped=skipped)


def _color_lookup(entries: list[dict[str, object]]) -> dict[tuple[int, int], str]:
    """Index remote entries by coordinate, ignoring unusable rows."""
    lookup: dict[tuple[int, int], str] = {}
    for entry in entries:
        x = entry.get("x")
        y = entry.get("y")
        color = entry.get("color")
        if not isinstance(x, int) or not isinstance(y, int):
            continue
        if not isinstance(color, str):
            continue
        try:
            lookup[(x, y)] = normalize_color(color)
        except ValueError:
            continue
    return lookup
