"""Tests for the Supabase session backend."""

from dataclasses import dataclass, field

import pytest

from pixel_embedder.adapters.supabase_session_backend import SupabaseSessionBackend


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {"select": [], "upsert": [], "delete": []}
    )
    last_payload: object | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)
    last_on_conflict: str | None = None

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        return self

    def upsert(self, payload: object, on_conflict: str = "") -> "FakeTable":
        self._action = "upsert"
        self.last_payload = payload
        self.last_on_conflict = on_conflict
        return self

    def delete(self) -> "FakeTable":
        self._action = "delete"
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        queue = self.response_queue.get(self._action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def test_read_returns_payload() -> None:
    client = FakeClient()
    client.table("embedder_sessions").queue(
        "select", [{"slot": "progress", "payload": {"sessionId": "embed_1"}}]
    )
    backend = SupabaseSessionBackend(client)  # type: ignore[arg-type]

    payload = backend.read("progress")

    assert payload == {"sessionId": "embed_1"}
    assert client.table("embedder_sessions").last_filters == [("slot", "progress")]


def test_read_missing_slot_returns_none() -> None:
    backend = SupabaseSessionBackend(FakeClient())  # type: ignore[arg-type]

    assert backend.read("progress") is None


def test_read_rejects_non_object_payload() -> None:
    client = FakeClient()
    client.table("embedder_sessions").queue(
        "select", [{"slot": "progress", "payload": "garbage"}]
    )
    backend = SupabaseSessionBackend(client)  # type: ignore[arg-type]

    with pytest.raises(ValueError):
        backend.read("progress")


def test_write_upserts_on_slot() -> None:
    client = FakeClient()
    backend = SupabaseSessionBackend(client)  # type: ignore[arg-type]

    backend.write("progress", {"sessionId": "embed_1"})

    table = client.table("embedder_sessions")
    assert table.last_on_conflict == "slot"
    assert isinstance(table.last_payload, dict)
    assert table.last_payload["slot"] == "progress"
    assert table.last_payload["payload"] == {"sessionId": "embed_1"}
    assert "updated_at" in table.last_payload


def test_delete_filters_by_slot() -> None:
    client = FakeClient()
    backend = SupabaseSessionBackend(client)  # type: ignore[arg-type]

    backend.delete("progress")

    assert client.table("embedder_sessions").last_filters == [("slot", "progress")]
