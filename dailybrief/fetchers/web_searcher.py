"""Keyword news search: DuckDuckGo, plus Brave and Tavily when API keys are set."""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from dateutil import parser as dateparser
from ddgs import DDGS

from dailybrief.fetchers.rss_fetcher import as_utc
from dailybrief.models import NewsItem

logger = logging.getLogger(__name__)

BRAVE_NEWS_URL = "https://api.search.brave.com/res/v1/news/search"
TAVILY_SEARCH_URL = "https://api.tavily.com/search"


def _parse_when(raw: Optional[str]) -> datetime:
    if raw:
        try:
            return as_utc(dateparser.parse(raw))
        except (ValueError, OverflowError):
            pass
    return datetime.now(timezone.utc)


def _make_item(title, url, source, published_raw, body, fetched_via) -> Optional[NewsItem]:
    title = (title or "").strip()
    url = (url or "").strip()
    if not title or not url:
        return None
    return NewsItem(
        title=title,
        url=url,
        source=source or "Web Search",
        published_at=_parse_when(published_raw),
        description=(body or "")[:500],
        fetched_via=fetched_via,
    )


def search_duckduckgo(query: str, max_results: int = 5) -> list[NewsItem]:
    """Search DuckDuckGo news for a query."""
    try:
        with DDGS() as ddgs:
            results = ddgs.news(query, max_results=max_results)
    except Exception as e:
        logger.warning(f"  [Search] DuckDuckGo error for '{query}': {e}")
        return []

    items = [
        _make_item(r.get("title"), r.get("url"), r.get("source"), r.get("date"), r.get("body"), "duckduckgo")
        for r in results
    ]
    return [i for i in items if i]


def search_brave(query: str, api_key: str, max_results: int = 5, timeout: int = 15) -> list[NewsItem]:
    """Brave News search, limited to the past day."""
    try:
        resp = httpx.get(
            BRAVE_NEWS_URL,
            params={"q": query, "count": max_results, "search_lang": "en", "freshness": "pd"},
            headers={"Accept": "application/json", "X-Subscription-Token": api_key},
            timeout=timeout,
        )
        resp.raise_for_status()
        results = resp.json().get("results", [])
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"  [Brave] Error for '{query}': {e}")
        return []

    items = [
        _make_item(
            r.get("title"), r.get("url"),
            (r.get("meta_url") or {}).get("hostname") or "Brave Search",
            r.get("page_age"), r.get("description"), "brave",
        )
        for r in results
    ]
    return [i for i in items if i]


def search_tavily(query: str, api_key: str, max_results: int = 5, timeout: int = 20) -> list[NewsItem]:
    """Tavily news search over the last day."""
    try:
        resp = httpx.post(
            TAVILY_SEARCH_URL,
            json={
                "api_key": api_key,
                "query": query,
                "topic": "news",
                "max_results": max_results,
                "days": 1,
            },
            timeout=timeout,
        )
        resp.raise_for_status()
        results = resp.json().get("results", [])
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"  [Tavily] Error for '{query}': {e}")
        return []

    items = [
        _make_item(r.get("title"), r.get("url"), "Tavily", r.get("published_date"), r.get("content"), "tavily")
        for r in results
    ]
    return [i for i in items if i]


def search_all_queries(
    queries: list[str],
    max_results: int = 5,
    brave_api_key: str = "",
    tavily_api_key: str = "",
) -> list[NewsItem]:
    """Run every query against each available search provider."""
    if not brave_api_key:
        logger.warning("  [Brave] No API key configured, skipping")
    if not tavily_api_key:
        logger.warning("  [Tavily] No API key configured, skipping")

    all_items: list[NewsItem] = []
    for query in queries:
        found = search_duckduckgo(query, max_results)
        if brave_api_key:
            found += search_brave(query, brave_api_key, max_results)
        if tavily_api_key:
            found += search_tavily(query, tavily_api_key, max_results)
        logger.info(f"  [Search] '{query}' — {len(found)} items")
        all_items.extend(found)
    return all_items
