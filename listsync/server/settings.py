"""Service configuration loaded from LISTSYNC_* environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Sync server settings.

    All fields are read from environment variables with the ``LISTSYNC_``
    prefix.  For example, ``LISTSYNC_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LISTSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit one JSON object per log line instead of the coloured format."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    cors_origins: list[str] = ["*"]

    # -- Data storage ----------------------------------------------------------
    data_root: str = "./data"
    """Root directory for workspace records and the code index."""

    data_prefix: str | None = None
    """Optional namespace prefix inserted into all data paths.

    When set, all paths become ``{data_root}/{data_prefix}/...``.
    """

    record_store: Literal["local", "s3"] = "local"

    # S3 (only when record_store = "s3")
    s3_endpoint: str | None = None
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_path_style: bool = False
    """Use path-style addressing (required by MinIO and some S3-compatible services)."""

    # -- Push notifications ----------------------------------------------------
    vapid_private_key: SecretStr | None = None
    """VAPID private key (PEM or base64url DER).  Push delivery is disabled when unset."""

    vapid_subject: str = "mailto:admin@localhost"
    push_timeout: float = 10.0
    """Upper bound in seconds for a single push delivery."""

    push_title: str = "Lists updated"
    push_icon: str | None = "/pwa-192x192.png"
    push_skip_live_devices: bool = True
    """Do not push to devices that already received the change over the live channel."""

    # -- Live channel ----------------------------------------------------------
    live_send_timeout: float = 5.0
    """Upper bound in seconds for one live-channel send; a slower connection is dropped."""


def get_settings() -> SyncSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``get_settings.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return _get_settings_cached()


@lru_cache(maxsize=1)
def _get_settings_cached() -> SyncSettings:
    return SyncSettings()


get_settings.cache_clear = _get_settings_cached.cache_clear  # type: ignore[attr-defined]
