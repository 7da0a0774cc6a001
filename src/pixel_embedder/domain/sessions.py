"""Domain models for placement sessions."""

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pixel_embedder.domain.pixels import Write


class SessionRecord(BaseModel):
    """Persisted progress of a placement run."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    session_id: str = Field(min_length=1)
    queue: list[Write]
    original_targets: list[Write] | None = None
    placed_count: int = Field(ge=0)
    error_count: int = Field(ge=0)
    skipped_count: int = Field(ge=0)
    timestamp: int = Field(ge=0)
    active: bool

    def to_payload(self) -> dict[str, object]:
        """Return the JSON-ready storage layout."""
        return self.model_dump(mode="json", by_alias=True)


class RunState(StrEnum):
    """Lifecycle states of the placement controller."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PAUSED = "paused"
    HALTED = "halted"


@dataclass(frozen=True)
class PlacementStatus:
    """Point-in-time view of the controller for operators."""

    state: RunState
    session_id: str | None
    queue_length: int
    original_targets_count: int
    placed_count: int
    error_count: int
    skipped_count: int
    burst_used: int
    burst_limit: int
    dispatches_last_minute: int
    min_interval_seconds: float
    has_resumable_session: bool
