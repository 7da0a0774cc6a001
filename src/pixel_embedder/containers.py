"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from supabase import create_client

from pixel_embedder.adapters.canvas_client import HttpxCanvasClient
from pixel_embedder.adapters.file_session_backend import FileSessionBackend
from pixel_embedder.adapters.supabase_session_backend import SupabaseSessionBackend
from pixel_embedder.config import Settings, uses_supabase
from pixel_embedder.services.differ import RegionDiffer
from pixel_embedder.services.dispatch import Dispatcher
from pixel_embedder.services.pacing import RateGovernor
from pixel_embedder.services.placement import PlacementController
from pixel_embedder.services.rasterizer import Rasterizer
from pixel_embedder.services.recovery import ValidationRecoverer
from pixel_embedder.services.session_store import SessionBackend, SessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    rasterizer: Rasterizer
    controller: PlacementController
    close_resources: Callable[[], Awaitable[None]]


def build_session_backend(settings: Settings) -> SessionBackend:
    """Pick Supabase when configured, a local JSON file otherwise."""
    if uses_supabase(settings):
        client = create_client(
            str(settings.supabase_url), str(settings.supabase_service_key)
        )
        return SupabaseSessionBackend(client)
    return FileSessionBackend(Path(settings.session_dir))


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    canvas_client = HttpxCanvasClient.create(resolved_settings.canvas_base_url)
    governor = RateGovernor(
        burst_limit=resolved_settings.burst_limit,
        burst_window=resolved_settings.burst_window_seconds,
        safety_buffer=resolved_settings.burst_safety_buffer_seconds,
        min_interval=resolved_settings.min_interval_seconds,
        jitter_min=resolved_settings.jitter_min_seconds,
        jitter_max=resolved_settings.jitter_max_seconds,
    )
    dispatcher = Dispatcher(
        channel=canvas_client,
        governor=governor,
        ack_timeout=resolved_settings.ack_timeout_seconds,
    )
    differ = RegionDiffer(
        source=canvas_client,
        grid_width=resolved_settings.grid_width,
        grid_height=resolved_settings.grid_height,
        region_size=resolved_settings.region_size,
        region_pause=resolved_settings.region_pause_seconds,
        throttle_cooldown=resolved_settings.region_throttle_cooldown_seconds,
    )
    store = SessionStore(
        backend=build_session_backend(resolved_settings),
        slot=resolved_settings.session_slot,
        max_age_hours=resolved_settings.session_max_age_hours,
    )
    controller = PlacementController(
        dispatcher=dispatcher,
        differ=differ,
        recoverer=ValidationRecoverer(differ),
        store=store,
        diff_threshold=resolved_settings.diff_threshold,
        checkpoint_every=resolved_settings.checkpoint_every,
        progress_every=resolved_settings.progress_every,
        burst_cooldown=resolved_settings.burst_cooldown_seconds,
        rate_cooldown=resolved_settings.rate_cooldown_seconds,
        failure_cooldown=resolved_settings.failure_cooldown_seconds,
    )
    rasterizer = Rasterizer(
        grid_width=resolved_settings.grid_width,
        grid_height=resolved_settings.grid_height,
        min_interval_seconds=resolved_settings.min_interval_seconds,
    )

    async def close_resources() -> None:
        controller.stop()
        await canvas_client.close()

    return AppContainer(
        settings=resolved_settings,
        rasterizer=rasterizer,
        controller=controller,
        close_resources=close_resources,
    )
