"""Domain models for canvas writes."""

import re
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

_HEX_COLOR = re.compile(r"^[0-9A-F]{6}$")


def normalize_color(value: str) -> str:
    """Return a colour as six upper-case hex digits without a leading '#'."""
    cleaned = value.strip().lstrip("#").upper()
    if not _HEX_COLOR.match(cleaned):
        raise ValueError(f"invalid colour: {value!r}")
    return cleaned


class Write(BaseModel):
    """Single coordinate + colour update targeted at the canvas."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(ge=0)
    y: int = Field(ge=0)
    color: str

    @field_validator("color", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> str:
        if not isinstance(value, str):
            raise ValueError("colour must be a string")
        return normalize_color(value)


@dataclass
class Region:
    """Axis-aligned tile of the canvas and the writes that fall inside it."""

    x1: int
    y1: int
    x2: int
    y2: int
    members: list[Write] = field(default_factory=list)


class ErrorKind(StrEnum):
    """Failure classes a dispatch attempt can end with."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    BURST_LIMITED = "burst_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a single write submission."""

    ok: bool
    error: ErrorKind | None = None
    message: str = ""

    @classmethod
    def success(cls) -> "DispatchResult":
        """Build a successful result."""
        return cls(ok=True)

    @classmethod
    def failure(cls, error: ErrorKind, message: str = "") -> "DispatchResult":
        """Build a failed result with its classification."""
        return cls(ok=False, error=error, message=message)
