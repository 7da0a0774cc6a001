"""Recovery of writes that silently failed to land."""

import logging
from dataclasses import dataclass

from pixel_embedder.domain.pixels import Write
from pixel_embedder.services.differ import RegionDiffer

_logger = logging.getLogger(__name__)


@dataclass
class ValidationRecoverer:
    """Re-diffs a run's original targets against the remote canvas."""

    differ: RegionDiffer

    async def recover(self, original_targets: list[Write]) -> list[Write]:
        """Return the original targets that are currently missing or wrong."""
        _logger.info("Validating %s original pixels", len(original_targets))
        result = await self.differ.filter(original_targets)
        if result.pending:
            _logger.info("Found %s missing pixels", len(result.pending))
        else:
            _logger.info("Validation complete, no missing pixels")
        return result.pending


def merge(recovered: list[Write], remaining: list[Write]) -> list[Write]:
    """Put recovered writes ahead of the remaining queue without duplicates."""
    seen: set[Write] = set()
    merged: list[Write] = []
    for write in [*recovered, *remaining]:
        if write in seen:
            continue
        seen.add(write)
        merged.append(write)
    return merged
