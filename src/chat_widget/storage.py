"""Key-value persistence used by the message store and the theme preference.

The widget only ever needs ``get(key)`` and ``set(key, value)`` on strings,
the same contract a browser's ``localStorage`` offers. Two backends:

    MemoryStorage   process-local dict (tests, throwaway sessions)
    FileStorage     one file per key under a data directory, atomic writes
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

HISTORY_KEY = "pidima-chat-history"
THEME_KEY = "pidima-theme"


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


# -----------------------------
# Helpers
# -----------------------------
def _safe_key(key: str) -> str:
    # Keep it readable but filesystem-safe.
    s = re.sub(r"[^\w.\-@]+", "_", key.strip() or "default")
    return s[:128]


def _atomic_write_text(path: Path, text: str, fsync: bool = True) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent)) as tmp:
        tmp.write(text)
        tmp.flush()
        if fsync:
            os.fsync(tmp.fileno())
        tmp_name = tmp.name
    os.replace(tmp_name, path)


# -----------------------------
# Backends
# -----------------------------
class MemoryStorage:
    """Dict-backed storage; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("storage values must be strings")
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data


class FileStorage:
    """Directory-backed storage.

    Layout:
        data_dir/
          <key>.json      # raw string value as written by set()

    Writes are synchronous and block the calling thread until the file is
    replaced; with ``fsync`` on that includes a flush to the device. Under
    the server the scheduler calls them from the event loop, so a slow disk
    stalls other requests for that long. ``fsync=False`` trades crash
    durability for latency.
    """

    def __init__(self, data_dir: str, fsync: bool = True) -> None:
        self.root = Path(data_dir)
        self.fsync = fsync
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        return self.root / f"{_safe_key(key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", path, e)
            return None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("storage values must be strings")
        with self._lock:
            _atomic_write_text(self._path(key), value, fsync=self.fsync)

    def __contains__(self, key: str) -> bool:
        return self._path(key).exists()
