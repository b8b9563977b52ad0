from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from rapidfuzz import fuzz

from dailybrief.fetchers.rss_fetcher import fetch_google_news, fetch_rss_feeds
from dailybrief.fetchers.web_searcher import search_all_queries
from dailybrief.models import NewsItem
from dailybrief.processing.deduplicator import normalize_url

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_SCORE = 50


def source_score(url: str, source_priority: dict[str, int]) -> int:
    for domain, score in source_priority.items():
        if domain in url:
            return score
    return DEFAULT_SOURCE_SCORE


def is_excluded(item: NewsItem, exclude_keywords: list[str], exclude_patterns: list[str]) -> bool:
    text = f"{item.title} {item.description}"
    lowered = text.lower()
    if any(kw.lower() in lowered for kw in exclude_keywords):
        return True
    return any(re.search(p, text) for p in exclude_patterns)


def is_relevant(item: NewsItem, keywords: list[str], always_relevant: list[str]) -> bool:
    """Keep general-interest feed items only when they mention a domain keyword."""
    if item.fetched_via != "rss" or item.source in always_relevant:
        return True
    text = f"{item.title} {item.description}".lower()
    return any(kw.lower() in text for kw in keywords)


def filter_news(
    items: list[NewsItem],
    domain: dict,
    now: Optional[datetime] = None,
    threshold: int = 80,
) -> list[NewsItem]:
    """Drop stale, excluded and repeated items.

    Repeats are detected by normalized URL and by fuzzy title match against
    titles already kept (rapidfuzz token_set_ratio >= threshold).
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=domain.get("max_age_hours", 24))
    keywords = domain.get("keywords", []) + domain.get("key_terms", [])

    seen_urls: set[str] = set()
    seen_titles: list[str] = []
    kept: list[NewsItem] = []
    stale = excluded = irrelevant = repeated = 0

    for item in items:
        if item.published_at < cutoff:
            stale += 1
            continue
        if is_excluded(item, domain.get("exclude_keywords", []), domain.get("exclude_patterns", [])):
            excluded += 1
            continue
        if domain.get("relevance_filter") and not is_relevant(item, keywords, domain.get("always_relevant_feeds", [])):
            irrelevant += 1
            continue

        norm_url = normalize_url(item.url)
        title_lower = item.title.lower().strip()
        if norm_url in seen_urls or any(
            fuzz.token_set_ratio(title_lower, t) >= threshold for t in seen_titles
        ):
            repeated += 1
            continue

        seen_urls.add(norm_url)
        seen_titles.append(title_lower)
        kept.append(item)

    logger.info(
        f"  [Filter] kept {len(kept)} of {len(items)} "
        f"(stale {stale}, excluded {excluded}, off-topic {irrelevant}, repeated {repeated})"
    )
    return kept


def rank_news(items: list[NewsItem], source_priority: dict[str, int]) -> list[NewsItem]:
    """Highest-priority sources first, newest first within the same priority."""
    return sorted(
        items,
        key=lambda i: (source_score(i.url, source_priority), i.published_at),
        reverse=True,
    )


def collect_news(cfg: dict, domain: dict, now: Optional[datetime] = None) -> list[NewsItem]:
    """Fetch every configured source for a domain, then filter and rank."""
    logger.info(f"  Fetching {len(domain['feeds'])} RSS feeds...")
    items = fetch_rss_feeds(domain["feeds"], timeout=cfg["feed_timeout"], max_items=cfg["max_items_per_feed"])

    keywords = domain["keywords"][: domain.get("search_keyword_limit", 10)]
    logger.info(f"  Searching Google News for {len(keywords)} keywords...")
    items += fetch_google_news(keywords, timeout=cfg["feed_timeout"], max_items=cfg["max_search_results"])

    items += search_all_queries(
        keywords,
        max_results=cfg["max_search_results"],
        brave_api_key=cfg.get("brave_api_key", ""),
        tavily_api_key=cfg.get("tavily_api_key", ""),
    )
    logger.info(f"  Total fetched: {len(items)}")

    filtered = filter_news(items, domain, now=now, threshold=cfg.get("dedup_threshold", 80))
    return rank_news(filtered, domain.get("source_priority", {}))
