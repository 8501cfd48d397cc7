"""
Companion Store Module
======================
Durable key/value storage for Luna's session - the local equivalent of a
browser's localStorage.

Values are plain strings (callers JSON-encode what they store). Keys are
logical names ("personality", "chat-history", ...) stored under a namespace
prefix so several companions can share one file.

No business logic lives here: get, set, delete.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Dict, Optional


class CompanionStore(ABC):
    """Interface shared by every store implementation."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryStore(CompanionStore):
    """Store that lives only as long as the process. Handy for tests."""

    def __init__(self, initial: Dict[str, str] = None, prefix: str = "luna-"):
        self.prefix = prefix
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[self.prefix + key] = value

    def get(self, key: str) -> Optional[str]:
        return self._data.get(self.prefix + key)

    def set(self, key: str, value: str) -> None:
        self._data[self.prefix + key] = value

    def delete(self, key: str) -> None:
        self._data.pop(self.prefix + key, None)

    def raw(self) -> Dict[str, str]:
        """Snapshot of the stored entries, prefixed keys included."""
        return dict(self._data)


class JsonFileStore(CompanionStore):
    """
    Store backed by a single JSON object on disk.

    The whole file is rewritten on every change and forced to disk, so a
    crash never loses an acknowledged write. An unreadable file is treated as
    empty (and replaced on the next write).
    """

    def __init__(self, path: str = "luna_session.json", prefix: str = "luna-"):
        """
        Args:
            path: Location of the JSON file (created on first write)
            prefix: Namespace prepended to every key
        """
        self.path = Path(path)
        self.prefix = prefix
        self._lock = Lock()
        self._data = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            print(f"⚠️  Could not read session store {self.path}: {e}")
            print("   Starting with an empty store.")
            return {}
        if not isinstance(data, dict):
            print(f"⚠️  Session store {self.path} is not a JSON object - ignoring it")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _flush(self):
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(self.prefix + key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[self.prefix + key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(self.prefix + key, None) is not None:
                self._flush()
