"""JSON-file session backend."""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from pixel_embedder.services.session_store import SessionBackend


@dataclass
class FileSessionBackend(SessionBackend):
    """Stores each slot as a JSON document inside a directory."""

    directory: Path

    def read(self, slot: str) -> dict[str, object] | None:
        """Return the stored payload, or None when the slot is empty."""
        path = self._path(slot)
        if not path.exists():
            return None
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Session payload in {path} is not an object")
        return payload

    def write(self, slot: str, payload: dict[str, object]) -> None:
        """Atomically replace the slot's document."""
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.directory, prefix=f".{slot}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, separators=(",", ":"))
            os.replace(tmp_name, self._path(slot))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, slot: str) -> None:
        """Remove the slot's document if present."""
        self._path(slot).unlink(missing_ok=True)

    def _path(self, slot: str) -> Path:
        return self.directory / f"{slot}.json"
