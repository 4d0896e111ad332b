"""
local_storage.py

Small key/value store for the persisted state of the rewrite tool
(user presets, the current preset pointer and the first-use flag).

Values are strings. Composite values are JSON-encoded by the caller.
JsonFileStorage keeps every key in a single JSON document and replaces the
whole file on each write, so a write either lands completely or not at all.
MemoryStorage has the same interface and is used by the tests.
"""

import json
import os
import tempfile
import threading
from pathlib import Path

from rewrite_config import log


class MemoryStorage:
    """In-process storage with the same interface as JsonFileStorage."""

    def __init__(self, initial=None):
        self._items = dict(initial or {})

    def get_item(self, key):
        return self._items.get(key)

    def set_item(self, key, value):
        self._items[key] = value

    def remove_item(self, key):
        self._items.pop(key, None)


class JsonFileStorage:
    """Storage backed by one JSON file on disk."""

    def __init__(self, path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Every key lives in one document, so each read-modify-write holds this
        self._lock = threading.RLock()

    def _load(self):
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log(f"Error loading storage file {self.path}: {e}", error=True)
            return {}
        if not isinstance(data, dict):
            log(f"Ignoring storage file {self.path}: not a JSON object", error=True)
            return {}
        return data

    def _save(self, data):
        # Write to a temp file in the same directory, then swap it in
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".storage_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get_item(self, key):
        with self._lock:
            return self._load().get(key)

    def set_item(self, key, value):
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove_item(self, key):
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)
