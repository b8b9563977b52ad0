"""RSS feeds and Google News keyword search (which is also served as RSS)."""

import calendar
import logging
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import feedparser
import httpx
from dateutil import parser as dateparser

from dailybrief.models import NewsItem

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Accept": "application/rss+xml,application/atom+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

GOOGLE_NEWS_RSS = "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en"


def google_news_url(query: str) -> str:
    """Google News RSS search restricted to the last 24 hours."""
    return GOOGLE_NEWS_RSS.format(query=quote(f"{query} when:1d"))


def fetch_feed(name: str, url: str, timeout: int = 15, max_items: int = 10, fetched_via: str = "rss") -> list[NewsItem]:
    """Fetch and parse one RSS/Atom feed. Errors are logged and yield no items."""
    try:
        resp = httpx.get(url, timeout=timeout, follow_redirects=True, headers=_HEADERS)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"  [RSS]  Error fetching {name}: {e}")
        return []

    feed = feedparser.parse(resp.text)
    if feed.bozo and not feed.entries:
        logger.warning(f"  [RSS]  Failed to parse {name}: {feed.bozo_exception}")
        return []

    return _entries_to_items(feed.entries, name, max_items, fetched_via)


def fetch_rss_feeds(feeds: list[dict], timeout: int = 15, max_items: int = 10) -> list[NewsItem]:
    """Fetch every enabled feed in the domain's feed list."""
    all_items: list[NewsItem] = []
    for fc in feeds:
        if not fc.get("enabled", True):
            logger.info(f"  [Skip] {fc['name']} (disabled)")
            continue
        items = fetch_feed(fc["name"], fc["url"], timeout, max_items)
        logger.info(f"  [RSS]  {fc['name']} — {len(items)} items")
        all_items.extend(items)
    return all_items


def fetch_google_news(keywords: list[str], timeout: int = 15, max_items: int = 5) -> list[NewsItem]:
    all_items: list[NewsItem] = []
    for keyword in keywords:
        items = fetch_feed(
            f"Google News: {keyword}", google_news_url(keyword),
            timeout, max_items, fetched_via="google_news",
        )
        logger.info(f"  [GNews] '{keyword}' — {len(items)} items")
        all_items.extend(items)
    return all_items


def _entries_to_items(entries, source_name: str, max_items: int, fetched_via: str) -> list[NewsItem]:
    """Convert feedparser entries to NewsItems."""
    items = []
    for entry in entries[:max_items]:
        title = entry.get("title", "").strip()
        link = entry.get("link", "").strip()
        if not title or not link:
            continue

        description = entry.get("summary", "") or entry.get("description", "")
        if description:
            description = re.sub(r"<[^>]+>", "", description).strip()[:500]

        # Google News entries name the real publisher in <source>
        source = source_name
        if fetched_via == "google_news":
            source = entry.get("source", {}).get("title") or source_name

        items.append(NewsItem(
            title=title, url=link, source=source,
            published_at=_parse_date(entry) or datetime.now(timezone.utc),
            description=description, fetched_via=fetched_via,
        ))
    return items


def _parse_date(entry) -> Optional[datetime]:
    """Try to parse a timezone-aware date from a feed entry."""
    for field in ("published", "updated", "created"):
        raw = entry.get(f"{field}_parsed") or entry.get(field)
        if raw is None:
            continue
        if hasattr(raw, "tm_year"):
            try:
                # feedparser normalizes *_parsed to UTC
                return datetime.fromtimestamp(calendar.timegm(raw), tz=timezone.utc)
            except (OverflowError, ValueError, OSError):
                continue
        if isinstance(raw, str):
            try:
                return as_utc(dateparser.parse(raw))
            except (ValueError, OverflowError):
                continue
    return None


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
