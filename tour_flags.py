"""Per-user product tour completion flags behind an explicit key-value store."""

from __future__ import annotations

import json
import logging
import threading
from typing import Dict, Optional, Protocol

import db

logger = logging.getLogger(__name__)

TOUR_NAMESPACE = "tours"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> bool:
        ...


class InMemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class SQLiteKeyValueStore:
    """Stores values in the ``kv_flags`` table under one namespace."""

    def __init__(self, namespace: str = TOUR_NAMESPACE) -> None:
        self.namespace = namespace

    def get(self, key: str) -> Optional[str]:
        return db.get_flag(self.namespace, key)

    def set(self, key: str, value: str) -> None:
        db.set_flag(self.namespace, key, value)

    def delete(self, key: str) -> bool:
        return db.delete_flag(self.namespace, key)


def tour_key(user_id: str) -> str:
    return f"tour_completed_{user_id}"


class TourProgress:
    """Tracks which tours a user has finished as one JSON object per user."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def completed_tours(self, user_id: str) -> Dict[str, bool]:
        raw = self.store.get(tour_key(user_id))
        if not raw:
            return {}
        try:
            status = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable tour state for user %s", user_id)
            return {}
        if not isinstance(status, dict):
            return {}
        return {str(key): bool(value) for key, value in status.items()}

    def _save(self, user_id: str, status: Dict[str, bool]) -> None:
        self.store.set(tour_key(user_id), json.dumps(status, sort_keys=True))

    def mark_completed(self, user_id: str, tour: str) -> Dict[str, bool]:
        status = self.completed_tours(user_id)
        status[tour] = True
        self._save(user_id, status)
        return status

    def reset_tour(self, user_id: str, tour: str) -> Dict[str, bool]:
        status = self.completed_tours(user_id)
        status.pop(tour, None)
        self._save(user_id, status)
        logger.info("Reset tour %s for user %s", tour, user_id)
        return status

    def reset_all_tours(self, user_id: str) -> bool:
        removed = self.store.delete(tour_key(user_id))
        logger.info("Reset all tours for user %s", user_id)
        return removed
