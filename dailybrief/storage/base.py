"""Persistence contract shared by every storage backend.

Brief keys are ``YYYY-MM-DD`` for the default domain and
``<domain>-YYYY-MM-DD`` for the others. Windowed lookups compare the date
part as a string, which only orders correctly because every key is zero
padded; ``validate_date_key`` enforces that on the way in.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from dailybrief.models import ActivityLog, BriefReport, IssueItem

ALL_DOMAINS = "*"

DATE_KEY_RE = re.compile(r"^(?:(?P<prefix>[a-z][a-z0-9_]*)-)?(?P<day>\d{4}-\d{2}-\d{2})$")


class StorageError(Exception):
    """A storage backend rejected or failed a command."""


class InvalidDateKeyError(ValueError):
    pass


def split_date_key(key: str) -> tuple[Optional[str], str]:
    """Split a brief key into (domain prefix or None, ISO day)."""
    match = DATE_KEY_RE.match(key)
    if not match:
        raise InvalidDateKeyError(f"Invalid brief date key: {key!r}")
    return match.group("prefix"), match.group("day")


def validate_date_key(key: str) -> str:
    _, day = split_date_key(key)
    try:
        date.fromisoformat(day)
    except ValueError:
        raise InvalidDateKeyError(f"Invalid calendar day in brief key: {key!r}")
    return key


def make_date_key(day: date | str, prefix: Optional[str] = None) -> str:
    day_str = day if isinstance(day, str) else day.isoformat()
    return f"{prefix}-{day_str}" if prefix else day_str


def day_epoch_ms(day: str) -> int:
    """Midnight UTC of an ISO day, in epoch milliseconds."""
    dt = datetime.combine(date.fromisoformat(day), datetime.min.time(), tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def sort_keys_recent_first(keys) -> list[str]:
    return sorted(keys, key=lambda k: (split_date_key(k)[1], k), reverse=True)


class StorageAdapter(ABC):
    """Uniform interface over briefs, ephemeral key/value entries and activity logs.

    Reads return None for anything missing or expired. Write failures are not
    retried; they propagate to the caller.
    """

    # -- briefs --------------------------------------------------------------

    @abstractmethod
    def save_brief(self, report: BriefReport) -> None: ...

    @abstractmethod
    def get_brief_by_date(self, date_key: str) -> Optional[BriefReport]: ...

    @abstractmethod
    def delete_brief(self, date_key: str) -> bool: ...

    @abstractmethod
    def list_brief_keys(self) -> list[str]:
        """All stored brief keys, most recent day first."""

    def get_latest_brief(self, domain: Optional[str] = ALL_DOMAINS) -> Optional[BriefReport]:
        """Most recent brief overall, or of one domain when ``domain`` is given."""
        keys = self._keys_for(domain)
        return self.get_brief_by_date(keys[0]) if keys else None

    def get_all_briefs(self, limit: int = 30, domain: Optional[str] = ALL_DOMAINS) -> list[BriefReport]:
        briefs = []
        for key in self._keys_for(domain)[:limit]:
            report = self.get_brief_by_date(key)
            if report is not None:
                briefs.append(report)
        return briefs

    def briefs_between(self, start: str, end: str, domain: Optional[str] = None) -> list[BriefReport]:
        """Briefs of one domain whose day lies in [start, end], most recent first."""
        keys = [
            k for k in self._keys_for(domain)
            if start <= split_date_key(k)[1] <= end
        ]
        return [r for r in (self.get_brief_by_date(k) for k in keys) if r is not None]

    def get_recent_issues(
        self, days: int = 3, domain: Optional[str] = None, today: Optional[date] = None,
    ) -> list[IssueItem]:
        """Issues of one domain from the trailing window ``[today - days, today]``.

        ``domain`` is the key prefix; None selects the default (unprefixed) domain.
        """
        today = today or date.today()
        start = (today - timedelta(days=days)).isoformat()
        return self._flatten(self.briefs_between(start, today.isoformat(), domain))

    def get_issues_by_date_range(
        self, start: date | str, end: date | str, domain: Optional[str] = None,
    ) -> list[IssueItem]:
        start = start if isinstance(start, str) else start.isoformat()
        end = end if isinstance(end, str) else end.isoformat()
        return self._flatten(self.briefs_between(start, end, domain))

    def _keys_for(self, domain) -> list[str]:
        keys = self.list_brief_keys()
        if domain == ALL_DOMAINS:
            return keys
        return [k for k in keys if split_date_key(k)[0] == (domain or None)]

    @staticmethod
    def _flatten(briefs: list[BriefReport]) -> list[IssueItem]:
        return [issue for report in briefs for issue in report.issues]

    # -- key/value -----------------------------------------------------------

    @abstractmethod
    def kv_set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None: ...

    @abstractmethod
    def kv_get(self, key: str) -> Any: ...

    @abstractmethod
    def kv_incr(self, key: str, amount: int = 1, ttl_seconds: Optional[int] = None) -> int:
        """Atomically add ``amount`` to an integer entry and return the new value.

        A missing or expired entry counts as 0. The TTL is applied only when
        the increment creates the entry.
        """

    @abstractmethod
    def kv_delete(self, key: str) -> None: ...

    # -- activity log ----------------------------------------------------------

    @abstractmethod
    def save_log(self, entry: ActivityLog) -> None: ...

    @abstractmethod
    def get_logs(self, limit: int = 100) -> list[ActivityLog]:
        """Most recent entries first."""

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
