"""Shared enumerations used by the sync server and the sync agent."""

from __future__ import annotations

from enum import StrEnum

# -- Live channel --------------------------------------------------------------


class LiveMessageType(StrEnum):
    """Message types pushed over the per-workspace WebSocket."""

    SYNC = "sync"


# -- Push notifications --------------------------------------------------------


class DeliveryOutcome(StrEnum):
    DELIVERED = "delivered"
    GONE = "gone"
    FAILED = "failed"


# -- Sync agent ----------------------------------------------------------------


class ConnectionState(StrEnum):
    """Live-channel state of a sync agent."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
