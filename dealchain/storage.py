"""
storage.py - DurableStore implementations

The Ledger persists each entity collection under its own key and only
relies on each save() being atomic for that key.

Classes:
- MemoryStore: Dict-backed store for tests and ephemeral sessions
- JsonFileStore: One JSON file per key, replaced atomically on save
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import copy
import json
import os
import tempfile


class MemoryStore:
    """
    Store that keeps values in a dict.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = copy.deepcopy(data) if data else {}
        self.writes = 0

    def load(self, key: str, default: Any = None) -> Any:
        if key not in self.data:
            return default
        return copy.deepcopy(self.data[key])

    def save(self, key: str, value: Any) -> None:
        self.data[key] = copy.deepcopy(value)
        self.writes += 1

    def __repr__(self):
        return f"MemoryStore({sorted(self.data)})"


class JsonFileStore:
    """
    Store that writes each key to `<directory>/<prefix><key>.json`.

    A save writes a temporary file in the same directory and renames it
    over the target with os.replace(), so a crash leaves either the old
    file or the new one.
    """

    def __init__(self, directory: str, prefix: str = "dealchain-", indent: Optional[int] = 2):
        self.directory = os.fspath(directory)
        self.prefix = prefix
        self.indent = indent
        os.makedirs(self.directory, exist_ok=True)

    def path_for(self, key: str) -> str:
        if not key or os.sep in key or (os.altsep and os.altsep in key):
            raise ValueError(f"Invalid store key: {key!r}")
        return os.path.join(self.directory, f"{self.prefix}{key}.json")

    def load(self, key: str, default: Any = None) -> Any:
        path = self.path_for(key)
        if not os.path.exists(path):
            return default
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.directory, prefix=f".{self.prefix}{key}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=self.indent, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def __repr__(self):
        return f"JsonFileStore({self.directory!r})"
