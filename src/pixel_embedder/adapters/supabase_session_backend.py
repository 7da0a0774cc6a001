"""Supabase-backed session backend."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from pixel_embedder.services.session_store import SessionBackend


@dataclass
class SupabaseSessionBackend(SessionBackend):
    """Supabase implementation storing one session row per slot."""

    client: Client
    table: str = "embedder_sessions"

    def read(self, slot: str) -> dict[str, object] | None:
        """Return the stored payload for a slot, if present."""
        response = (
            self.client.table(self.table)
            .select("slot, payload")
            .eq("slot", slot)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        payload = response.data[0].get("payload")
        if not isinstance(payload, dict):
            raise ValueError(f"Session payload for {slot} is not an object")
        return payload

    def write(self, slot: str, payload: dict[str, object]) -> None:
        """Upsert the slot's payload."""
        self.client.table(self.table).upsert(
            {
                "slot": slot,
                "payload": payload,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="slot",
        ).execute()

    def delete(self, slot: str) -> None:
        """Delete the slot's row."""
        self.client.table(self.table).delete().eq("slot", slot).execute()
