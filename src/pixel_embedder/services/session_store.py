"""Durable, best-effort storage of placement progress."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import ValidationError

from pixel_embedder.domain.sessions import SessionRecord

_MS_PER_HOUR = 60 * 60 * 1000

_logger = logging.getLogger(__name__)


class SessionBackend(Protocol):
    """Persistence interface for raw session payloads keyed by slot."""

    def read(self, slot: str) -> dict[str, object] | None:
        """Return the stored payload for a slot, if present."""

    def write(self, slot: str, payload: dict[str, object]) -> None:
        """Overwrite the payload stored for a slot."""

    def delete(self, slot: str) -> None:
        """Remove the payload stored for a slot."""


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class SessionStore:
    """Single-slot session storage with staleness eviction.

    Backend failures are logged and swallowed: durability is best effort and
    never interrupts a running placement loop.
    """

    backend: SessionBackend
    slot: str = "pixelEmbedder_progress"
    max_age_hours: float = 24.0
    clock_ms: Callable[[], int] = field(default=now_ms)

    def save(self, record: SessionRecord) -> None:
        """Overwrite the stored session with record."""
        try:
            self.backend.write(self.slot, record.to_payload())
        except Exception:
            _logger.exception("Could not save progress for %s", record.session_id)

    def load(self) -> SessionRecord | None:
        """Return the stored session unless it is missing, malformed or stale."""
        try:
            payload = self.backend.read(self.slot)
        except ValueError as exc:
            _logger.warning("Discarding unreadable session record: %s", exc)
            self.clear()
            return None
        except Exception:
            _logger.exception("Could not load progress")
            return None
        if payload is None:
            return None

        try:
            record = SessionRecord.model_validate(payload)
        except ValidationError as exc:
            _logger.warning("Discarding malformed session record: %s", exc)
            self.clear()
            return None

        age_hours = (self.clock_ms() - record.timestamp) / _MS_PER_HOUR
        if age_hours > self.max_age_hours:
            _logger.info(
                "Discarding session %s saved %.1f hours ago",
                record.session_id,
                age_hours,
            )
            self.clear()
            return None
        return record

    def clear(self) -> None:
        """Remove the stored session."""
        try:
            self.backend.delete(self.slot)
        except Exception:
            _logger.exception("Could not clear progress")
