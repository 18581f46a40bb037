"""listsync - multi-device list and item synchronization."""

__version__ = "0.1.0"
