import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional

from dailybrief.models import ActivityLog, BriefReport
from dailybrief.storage.base import (
    ALL_DOMAINS,
    StorageAdapter,
    sort_keys_recent_first,
    split_date_key,
    validate_date_key,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS briefs (
    date_key TEXT PRIMARY KEY,
    domain TEXT NOT NULL DEFAULT '',
    day TEXT NOT NULL,
    data TEXT NOT NULL,
    generated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_briefs_day ON briefs(day DESC);
CREATE INDEX IF NOT EXISTS idx_briefs_domain_day ON briefs(domain, day);

CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires_at REAL
);
CREATE INDEX IF NOT EXISTS idx_kv_expires_at ON kv_store(expires_at);

CREATE TABLE IF NOT EXISTS activity_logs (
    id TEXT PRIMARY KEY,
    timestamp INTEGER NOT NULL,
    action TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON activity_logs(timestamp DESC);
"""


class SQLiteStorage(StorageAdapter):
    """Local-disk storage for development; activity logs are kept indefinitely."""

    def __init__(self, db_path: str, clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self._clock = clock
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # Background jobs write status from worker threads
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_schema()

    def _init_schema(self):
        with self._lock:
            self.conn.executescript(SCHEMA)
            self.conn.commit()

    # -- briefs --------------------------------------------------------------

    def save_brief(self, report: BriefReport) -> None:
        validate_date_key(report.date)
        prefix, day = split_date_key(report.date)
        with self._lock:
            self.conn.execute(
                """INSERT OR REPLACE INTO briefs (date_key, domain, day, data, generated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (report.date, prefix or "", day, json.dumps(report.to_dict()), report.generated_at),
            )
            self.conn.commit()

    def get_brief_by_date(self, date_key: str) -> Optional[BriefReport]:
        with self._lock:
            row = self.conn.execute(
                "SELECT data FROM briefs WHERE date_key = ?", (date_key,)
            ).fetchone()
        return BriefReport.from_dict(json.loads(row["data"])) if row else None

    def delete_brief(self, date_key: str) -> bool:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM briefs WHERE date_key = ?", (date_key,))
            self.conn.commit()
        return cursor.rowcount > 0

    def list_brief_keys(self) -> list[str]:
        with self._lock:
            rows = self.conn.execute("SELECT date_key FROM briefs").fetchall()
        return sort_keys_recent_first(r["date_key"] for r in rows)

    def briefs_between(self, start: str, end: str, domain: Optional[str] = None) -> list[BriefReport]:
        if domain == ALL_DOMAINS:
            return super().briefs_between(start, end, domain)
        with self._lock:
            rows = self.conn.execute(
                """SELECT data FROM briefs
                   WHERE domain = ? AND day >= ? AND day <= ?
                   ORDER BY day DESC""",
                (domain or "", start, end),
            ).fetchall()
        return [BriefReport.from_dict(json.loads(r["data"])) for r in rows]

    # -- key/value -----------------------------------------------------------

    def _purge_expired(self, key: str):
        self.conn.execute(
            "DELETE FROM kv_store WHERE key = ? AND expires_at IS NOT NULL AND expires_at <= ?",
            (key, self._clock()),
        )

    def kv_set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), expires_at),
            )
            self.conn.commit()

    def kv_get(self, key: str) -> Any:
        with self._lock:
            self._purge_expired(key)
            self.conn.commit()
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return json.loads(row["value"]) if row else None

    def kv_incr(self, key: str, amount: int = 1, ttl_seconds: Optional[int] = None) -> int:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._purge_expired(key)
            # Existing rows keep their expiry; only a fresh counter gets the TTL
            self.conn.execute(
                """INSERT INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = CAST(value AS INTEGER) + ?""",
                (key, str(amount), expires_at, amount),
            )
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
            self.conn.commit()
        return int(row["value"])

    def kv_delete(self, key: str) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self.conn.commit()

    # -- activity log ----------------------------------------------------------

    def save_log(self, entry: ActivityLog) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO activity_logs (id, timestamp, action, data) VALUES (?, ?, ?, ?)",
                (entry.id, entry.timestamp, entry.action.value, json.dumps(entry.to_dict())),
            )
            self.conn.commit()

    def get_logs(self, limit: int = 100) -> list[ActivityLog]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT data FROM activity_logs ORDER BY timestamp DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [ActivityLog.from_dict(json.loads(r["data"])) for r in rows]

    def close(self):
        self.conn.close()
