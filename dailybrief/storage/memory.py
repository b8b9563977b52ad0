"""Volatile in-process storage, used when a deployment has no store configured.

Everything is lost when the process exits.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from typing import Any, Callable, Optional

from dailybrief.models import ActivityLog, BriefReport
from dailybrief.storage.base import StorageAdapter, sort_keys_recent_first, validate_date_key

logger = logging.getLogger(__name__)

MAX_LOGS = 1000


class MemoryStorage(StorageAdapter):
    def __init__(self, clock: Callable[[], float] = time.time, max_logs: int = MAX_LOGS):
        self._clock = clock
        self._max_logs = max_logs
        self._lock = threading.RLock()
        # Values are kept serialized so callers never share mutable state with the store
        self._briefs: dict[str, str] = {}
        self._kv: dict[str, tuple[str, Optional[float]]] = {}
        self._logs: list[tuple[int, int, str]] = []
        self._log_seq = itertools.count()
        logger.warning("[Storage] Using in-memory storage; data will not survive a restart")

    def save_brief(self, report: BriefReport) -> None:
        validate_date_key(report.date)
        with self._lock:
            self._briefs[report.date] = json.dumps(report.to_dict())

    def get_brief_by_date(self, date_key: str) -> Optional[BriefReport]:
        with self._lock:
            raw = self._briefs.get(date_key)
        return BriefReport.from_dict(json.loads(raw)) if raw else None

    def delete_brief(self, date_key: str) -> bool:
        with self._lock:
            return self._briefs.pop(date_key, None) is not None

    def list_brief_keys(self) -> list[str]:
        with self._lock:
            return sort_keys_recent_first(self._briefs)

    def _live(self, key: str) -> Optional[str]:
        entry = self._kv.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._kv[key]
            return None
        return raw

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    def kv_set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        with self._lock:
            self._kv[key] = (json.dumps(value), self._expiry(ttl_seconds))

    def kv_get(self, key: str) -> Any:
        with self._lock:
            raw = self._live(key)
        return json.loads(raw) if raw is not None else None

    def kv_incr(self, key: str, amount: int = 1, ttl_seconds: Optional[int] = None) -> int:
        with self._lock:
            raw = self._live(key)
            if raw is None:
                value, expires_at = amount, self._expiry(ttl_seconds)
            else:
                value, expires_at = int(json.loads(raw)) + amount, self._kv[key][1]
            self._kv[key] = (json.dumps(value), expires_at)
            return value

    def kv_delete(self, key: str) -> None:
        with self._lock:
            self._kv.pop(key, None)

    def save_log(self, entry: ActivityLog) -> None:
        with self._lock:
            # equal timestamps: most recently saved first
            self._logs.append((entry.timestamp, next(self._log_seq), json.dumps(entry.to_dict())))
            self._logs.sort(key=lambda row: (row[0], row[1]), reverse=True)
            del self._logs[self._max_logs:]

    def get_logs(self, limit: int = 100) -> list[ActivityLog]:
        with self._lock:
            recent = self._logs[:limit]
        return [ActivityLog.from_dict(json.loads(raw)) for _, _, raw in recent]
