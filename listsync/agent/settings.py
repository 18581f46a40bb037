"""Sync agent configuration loaded from LISTSYNC_AGENT_* environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    """Settings for a headless sync agent (one device)."""

    model_config = SettingsConfigDict(
        env_prefix="LISTSYNC_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    server_url: str = "http://localhost:3000"
    replica_path: str = "./replica.json"
    """JSON file holding this device's replica, device id and watermark."""

    request_timeout: float = 10.0

    # -- Live channel ----------------------------------------------------------
    reconnect_delay: float = 5.0
    """Delay before the first reconnect attempt; doubles on each failure."""

    reconnect_max_delay: float = 60.0
    resync_interval: float = 30.0
    """Seconds between periodic catch-up syncs; 0 disables them."""
