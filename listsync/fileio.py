"""Blocking file helpers shared by the local record store and the agent replica.

Run them in the thread pool (``anyio.to_thread.run_sync``) from async code.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename.

    The temp file is created in the same directory so ``os.replace`` is a
    single rename on the same filesystem.  A crash mid-write leaves the
    previous contents in place.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def read_file(path: Path) -> str:
    """Read file contents.  Raises ``FileNotFoundError`` if missing."""
    return path.read_text(encoding="utf-8")
