"""Key layout shared by the two Redis-protocol backends.

Both the self-hosted Redis client and the managed REST key/value service
speak the same command set, so they share every key name and encoding here
and only differ in how a command reaches the server. Data written by one is
readable by the other.

    brief:<date_key>      JSON BriefReport, expires after 90 days
    briefs_index          sorted set of date keys, scored by day (epoch ms)
    log:<ts>:<id>         JSON ActivityLog, expires after 30 days
    logs_index            sorted set of log keys, scored by timestamp
    <anything else>       JSON value written by kv_set / integer from kv_incr
"""

from __future__ import annotations

import json
from abc import abstractmethod
from typing import Any, Optional

from dailybrief.models import ActivityLog, BriefReport
from dailybrief.storage.base import (
    ALL_DOMAINS,
    StorageAdapter,
    day_epoch_ms,
    sort_keys_recent_first,
    split_date_key,
    validate_date_key,
)

BRIEF_TTL_SECONDS = 90 * 24 * 3600
LOG_TTL_SECONDS = 30 * 24 * 3600
BRIEFS_INDEX = "briefs_index"
LOGS_INDEX = "logs_index"


def brief_redis_key(date_key: str) -> str:
    return f"brief:{date_key}"


def log_redis_key(entry: ActivityLog) -> str:
    return f"log:{entry.timestamp}:{entry.id}"


class KeyValueLayoutStorage(StorageAdapter):
    """StorageAdapter over a Redis-style command interface."""

    @abstractmethod
    def _command(self, *args):
        """Run one command and return its decoded reply."""

    @abstractmethod
    def _transaction(self, commands: list[list]) -> list:
        """Run commands atomically, returning one reply per command."""

    # -- briefs --------------------------------------------------------------

    def save_brief(self, report: BriefReport) -> None:
        validate_date_key(report.date)
        _, day = split_date_key(report.date)
        self._transaction([
            ["SET", brief_redis_key(report.date), json.dumps(report.to_dict()), "EX", BRIEF_TTL_SECONDS],
            ["ZADD", BRIEFS_INDEX, day_epoch_ms(day), report.date],
        ])

    def get_brief_by_date(self, date_key: str) -> Optional[BriefReport]:
        raw = self._command("GET", brief_redis_key(date_key))
        return BriefReport.from_dict(json.loads(raw)) if raw else None

    def delete_brief(self, date_key: str) -> bool:
        deleted, _ = self._transaction([
            ["DEL", brief_redis_key(date_key)],
            ["ZREM", BRIEFS_INDEX, date_key],
        ])
        return int(deleted) > 0

    def list_brief_keys(self) -> list[str]:
        return sort_keys_recent_first(self._command("ZRANGE", BRIEFS_INDEX, 0, -1) or [])

    def briefs_between(self, start: str, end: str, domain: Optional[str] = None) -> list[BriefReport]:
        members = self._command("ZRANGEBYSCORE", BRIEFS_INDEX, day_epoch_ms(start), day_epoch_ms(end)) or []
        keys = sort_keys_recent_first(
            k for k in members
            if domain == ALL_DOMAINS or split_date_key(k)[0] == (domain or None)
        )
        return self._load_briefs(keys)

    def get_all_briefs(self, limit: int = 30, domain: Optional[str] = ALL_DOMAINS) -> list[BriefReport]:
        return self._load_briefs(self._keys_for(domain)[:limit])

    def _load_briefs(self, keys: list[str]) -> list[BriefReport]:
        if not keys:
            return []
        raws = self._command("MGET", *[brief_redis_key(k) for k in keys])
        # Index entries can outlive their expired brief
        return [BriefReport.from_dict(json.loads(raw)) for raw in raws if raw]

    # -- key/value -----------------------------------------------------------

    def kv_set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        args = ["SET", key, json.dumps(value)]
        if ttl_seconds:
            args += ["EX", int(ttl_seconds)]
        self._command(*args)

    def kv_get(self, key: str) -> Any:
        raw = self._command("GET", key)
        return json.loads(raw) if raw is not None else None

    def kv_incr(self, key: str, amount: int = 1, ttl_seconds: Optional[int] = None) -> int:
        value, ttl = self._transaction([["INCRBY", key, amount], ["TTL", key]])
        # TTL -1: the key has no expiry yet, so this increment created it
        if ttl_seconds and int(ttl) == -1:
            self._command("EXPIRE", key, int(ttl_seconds))
        return int(value)

    def kv_delete(self, key: str) -> None:
        self._command("DEL", key)

    # -- activity log ----------------------------------------------------------

    def save_log(self, entry: ActivityLog) -> None:
        key = log_redis_key(entry)
        cutoff = entry.timestamp - LOG_TTL_SECONDS * 1000
        self._transaction([
            ["SET", key, json.dumps(entry.to_dict()), "EX", LOG_TTL_SECONDS],
            ["ZADD", LOGS_INDEX, entry.timestamp, key],
            ["ZREMRANGEBYSCORE", LOGS_INDEX, "-inf", f"({cutoff}"],
        ])

    def get_logs(self, limit: int = 100) -> list[ActivityLog]:
        keys = self._command("ZREVRANGE", LOGS_INDEX, 0, limit - 1) or []
        if not keys:
            return []
        raws = self._command("MGET", *keys)
        return [ActivityLog.from_dict(json.loads(raw)) for raw in raws if raw]
