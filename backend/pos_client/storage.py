# backend/pos_client/storage.py
"""
Durable key/value store for POS terminal state.

One JSON object on disk, string values only. Writes go to a temp file in
the same directory and are swapped in with os.replace so a crash mid-write
leaves the previous state intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalStateStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable POS state file %s", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Discarding POS state file %s: not an object", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".pos-state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def remove_items(self, *keys: str) -> None:
        with self._lock:
            data = self._read()
            if any(k in data for k in keys):
                for key in keys:
                    data.pop(key, None)
                self._write(data)

    def get_json(self, key: str):
        """Decoded JSON for key; a corrupt entry is removed and None returned."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt POS state entry %r", key)
            self.remove_item(key)
            return None

    def set_json(self, key: str, value) -> None:
        self.set_item(key, json.dumps(value))
