"""Helpers around Claude API calls: retry on overload, text and JSON extraction."""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Callable

import anthropic

logger = logging.getLogger(__name__)

# HTTP statuses that mean "try again later": rate limited, unavailable, overloaded
RETRYABLE_STATUS = {429, 503, 529}

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


def is_retryable(error: Exception) -> bool:
    if isinstance(error, anthropic.RateLimitError):
        return True
    if isinstance(error, anthropic.APIStatusError):
        return error.status_code in RETRYABLE_STATUS
    return "overloaded" in str(error).lower()


def generate_with_retry(
    client: anthropic.Anthropic,
    retries: int = 3,
    delay: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    **request,
):
    """Call client.messages.create, backing off on rate-limit/overload errors.

    The delay doubles after each failed attempt. Any other error, or the last
    retryable one, propagates to the caller.
    """
    for attempt in range(1, retries + 1):
        try:
            return client.messages.create(**request)
        except Exception as e:
            if attempt >= retries or not is_retryable(e):
                raise
            logger.warning(f"  [LLM] Model busy ({e.__class__.__name__}), retry {attempt}/{retries - 1} in {delay:.0f}s")
            sleep(delay)
            delay *= 2


def response_text(response) -> str:
    """Concatenate the text blocks of a Messages API response."""
    parts = [
        getattr(block, "text", "")
        for block in response.content
        if getattr(block, "type", "text") == "text"
    ]
    return "".join(parts).strip()


def extract_json(text: str, kind: str = "object"):
    """Pull the first JSON object (or array) out of a model reply.

    Raises ValueError when nothing parseable is found.
    """
    pattern = r"\{.*\}" if kind == "object" else r"\[.*\]"
    match = re.search(pattern, text, re.DOTALL)
    if not match:
        raise ValueError(f"No JSON {kind} in model output")
    try:
        return json.loads(match.group())
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed JSON {kind} in model output: {e}") from e


def grounding_urls(response) -> list[str]:
    """URLs returned by the web search tool during a grounded request."""
    urls: list[str] = []
    for block in response.content:
        if getattr(block, "type", "") != "web_search_tool_result":
            continue
        results = getattr(block, "content", None)
        if not isinstance(results, list):
            continue
        for result in results:
            url = getattr(result, "url", None)
            if url and url not in urls:
                urls.append(url)
    return urls
