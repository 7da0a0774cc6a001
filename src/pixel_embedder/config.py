"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    canvas_base_url: str
    control_token: str
    grid_width: int = 1000
    grid_height: int = 1000
    region_size: int = 50
    diff_threshold: int = 10
    burst_limit: int = 15
    burst_window_seconds: float = 10.0
    burst_safety_buffer_seconds: float = 2.0
    min_interval_seconds: float = 0.4
    jitter_min_seconds: float = 0.05
    jitter_max_seconds: float = 0.15
    ack_timeout_seconds: float = 8.0
    region_pause_seconds: float = 0.2
    region_throttle_cooldown_seconds: float = 2.0
    burst_cooldown_seconds: float = 15.0
    rate_cooldown_seconds: float = 10.0
    failure_cooldown_seconds: float = 1.0
    checkpoint_every: int = 10
    progress_every: int = 50
    session_slot: str = "pixelEmbedder_progress"
    session_dir: str = ".embedder"
    session_max_age_hours: float = 24.0
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def uses_supabase(settings: Settings) -> bool:
    """Return True when Supabase credentials are configured for sessions."""
    url = (settings.supabase_url or "").strip()
    key = (settings.supabase_service_key or "").strip()
    return bool(url and key)
