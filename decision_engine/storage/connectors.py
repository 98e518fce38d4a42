"""
Storage connector contract and the in-memory connector.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class StorageConnector(ABC):
    """Key-value store for sticky assignments.

    Records are plain dictionaries keyed by ``feature_key`` and
    ``user_id``. Last write wins per key.
    """

    @abstractmethod
    def get(self, feature_key: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored record or ``None``."""

    @abstractmethod
    def set(self, data: Dict[str, Any]) -> bool:
        """Store a record, replacing any previous one for the same key."""

    @staticmethod
    def make_key(feature_key: str, user_id: str) -> str:
        return f"{feature_key}_{user_id}"


class InMemoryStorageConnector(StorageConnector):
    """Thread-safe dictionary connector for tests and single-process use."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, feature_key: str, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._data.get(self.make_key(feature_key, user_id))
            return dict(record) if record is not None else None

    def set(self, data: Dict[str, Any]) -> bool:
        with self._lock:
            self._data[self.make_key(data["feature_key"], data["user_id"])] = dict(data)
        return True

    def clear(self):
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
