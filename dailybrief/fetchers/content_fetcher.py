"""Fetch and extract article text for user-supplied report sources."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx
import trafilatura

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class FetchedArticle:
    url: str
    title: str
    text: str


async def _fetch_one(
    client: httpx.AsyncClient,
    url: str,
    max_length: int,
    semaphore: asyncio.Semaphore,
) -> FetchedArticle | None:
    async with semaphore:
        try:
            resp = await client.get(url, follow_redirects=True, headers=_HEADERS)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"  [Content] Failed to fetch {url}: {e}")
            return None

        text = trafilatura.extract(resp.text, include_comments=False, include_tables=False)
        if not text:
            logger.warning(f"  [Content] No readable text at {url}")
            return None

        metadata = trafilatura.extract_metadata(resp.text)
        title = (metadata.title if metadata and metadata.title else None) or url
        return FetchedArticle(url=url, title=title, text=text[:max_length])


async def _fetch_all(urls: list[str], max_length: int, max_concurrent: int, timeout: int) -> list:
    semaphore = asyncio.Semaphore(max_concurrent)
    async with httpx.AsyncClient(timeout=timeout) as client:
        tasks = [_fetch_one(client, url, max_length, semaphore) for url in urls]
        return await asyncio.gather(*tasks)


def fetch_content_from_urls(
    urls: list[str],
    max_content_length: int = 10000,
    max_concurrent: int = 5,
    timeout: int = 15,
) -> list[FetchedArticle]:
    """Fetch readable text for each URL; URLs that fail are left out.

    Returns:
        Articles in the order of ``urls``.
    """
    if not urls:
        return []
    results = asyncio.run(_fetch_all(urls, max_content_length, max_concurrent, timeout))
    return [r for r in results if r is not None]
