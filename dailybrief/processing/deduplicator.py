from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

import anthropic

from dailybrief.models import IssueItem
from dailybrief.processing.llm import response_text
from dailybrief.processing.similarity import similarity

logger = logging.getLogger(__name__)

SOURCE_OVERLAP_THRESHOLD = 0.5
HEADLINE_DUPLICATE_THRESHOLD = 0.7
SEMANTIC_CHECK_FLOOR = 0.2

_TRACKING_PARAMS = {"utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term", "ref", "source"}

SemanticCheck = Callable[[IssueItem, IssueItem], bool]

_YES_RE = re.compile(r"\bYES\b")


def normalize_url(url: str) -> str:
    """Normalize a URL for comparison: lowercase host, strip tracking params, trailing slashes."""
    try:
        parsed = urlparse(url.strip())
        netloc = parsed.netloc.lower()
        if netloc.startswith("www."):
            netloc = netloc[4:]
        params = parse_qs(parsed.query)
        kept = {k: v for k, v in params.items() if k.lower() not in _TRACKING_PARAMS}
        query = urlencode(kept, doseq=True) if kept else ""
        return urlunparse((parsed.scheme.lower(), netloc, parsed.path.rstrip("/"), parsed.params, query, ""))
    except ValueError:
        return url.strip().lower()


def source_overlap(a: list[str], b: list[str]) -> float:
    """Share of the smaller source list that also appears in the other one.

    Returns 0 when either issue cites no sources.
    """
    set_a = {normalize_url(u) for u in a if u}
    set_b = {normalize_url(u) for u in b if u}
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / min(len(set_a), len(set_b))


def is_duplicate(
    candidate: IssueItem,
    history: list[IssueItem],
    semantic_check: Optional[SemanticCheck] = None,
    overlap_threshold: float = SOURCE_OVERLAP_THRESHOLD,
    headline_threshold: float = HEADLINE_DUPLICATE_THRESHOLD,
    semantic_floor: float = SEMANTIC_CHECK_FLOOR,
) -> bool:
    """Decide whether a candidate issue repeats one already published.

    Each history issue is compared in order, cheapest test first: cited
    source overlap, then headline similarity, and only for headlines in the
    ambiguous band the (expensive) semantic check.
    """
    for past in history:
        overlap = source_overlap(candidate.sources, past.sources)
        if overlap >= overlap_threshold:
            logger.info(f"  [Dedup] Source overlap {overlap:.0%}: \"{candidate.headline}\" ~ \"{past.headline}\"")
            return True

        sim = similarity(candidate.headline, past.headline)
        if sim > headline_threshold:
            logger.info(f"  [Dedup] Headline similarity {sim:.2f}: \"{candidate.headline}\" ~ \"{past.headline}\"")
            return True

        if semantic_check is not None and semantic_floor < sim <= headline_threshold:
            if semantic_check(candidate, past):
                logger.info(f"  [Dedup] Semantic duplicate: \"{candidate.headline}\" ~ \"{past.headline}\"")
                return True

    return False


class OnClassifierError(Enum):
    """What the semantic checker answers when the model call fails."""
    ASSUME_NOT_DUPLICATE = "assume_not_duplicate"
    ASSUME_DUPLICATE = "assume_duplicate"
    RAISE = "raise"


SEMANTIC_PROMPT = """\
You are a news editor. Decide whether the two news issues below report the same underlying story or event.

Issue A
Headline: {headline_a}
Key facts:
{facts_a}

Issue B
Headline: {headline_b}
Key facts:
{facts_b}

Answer with exactly one word: YES if they cover the same story, NO otherwise."""


class SemanticDuplicateChecker:
    """Asks Claude whether two issues tell the same story.

    Failures follow ``on_error``; the default treats the pair as distinct.
    """

    def __init__(
        self,
        client: anthropic.Anthropic,
        model: str,
        on_error: OnClassifierError = OnClassifierError.ASSUME_NOT_DUPLICATE,
    ):
        self.client = client
        self.model = model
        self.on_error = on_error

    def __call__(self, a: IssueItem, b: IssueItem) -> bool:
        prompt = SEMANTIC_PROMPT.format(
            headline_a=a.headline,
            facts_a="\n".join(f"- {f}" for f in a.key_facts),
            headline_b=b.headline,
            facts_b="\n".join(f"- {f}" for f in b.key_facts),
        )
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=10,
                messages=[{"role": "user", "content": prompt}],
            )
            answer = response_text(response).upper()
        except Exception as e:
            if self.on_error is OnClassifierError.RAISE:
                raise
            logger.warning(f"  [Dedup] Semantic check failed ({e}); applying {self.on_error.value}")
            return self.on_error is OnClassifierError.ASSUME_DUPLICATE

        return bool(_YES_RE.search(answer))
