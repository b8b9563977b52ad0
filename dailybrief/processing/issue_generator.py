from __future__ import annotations

import logging
import re
from typing import Optional

import anthropic

from dailybrief.models import IssueItem, NewsItem
from dailybrief.processing.frameworks import framework_names, match_frameworks
from dailybrief.processing.llm import extract_json, generate_with_retry, response_text

logger = logging.getLogger(__name__)

MAX_ARTICLES_PER_PROMPT = 8
DEFAULT_SOURCE_COUNT = 3

ISSUE_PROMPT = """\
You are a {expert_role} writing one entry of a daily executive news brief.

The articles below were grouped under the topic "{label}". Write a single issue about the most
important story they share.

Analysis lens: {framework}
Lens focus: {insight_template}

ARTICLES:
{articles}

Respond with JSON only:
{{
  "headline": "concise headline",
  "keyFacts": ["fact 1", "fact 2", "fact 3"],
  "insight": "2-3 sentences of analysis through the lens above",
  "oneLineSummary": "one sentence",
  "category": "short category label",
  "hashtags": ["#tag1", "#tag2"],
  "relevantSourceIndices": [numbers of the articles the issue is based on]
}}"""

_STOPWORDS = {
    "with", "from", "that", "this", "will", "into", "over", "after", "amid", "about",
    "their", "than", "more", "says", "said", "plans", "could", "would", "what", "when",
}


def _format_article(index: int, item: NewsItem) -> str:
    desc = item.description or "(no description available)"
    return f"[{index}] {item.title}\nSource: {item.source}\nURL: {item.url}\nSummary: {desc}"


def headline_keywords(headline: str) -> set[str]:
    words = re.sub(r"[^\w\s]", " ", headline.lower()).split()
    return {w for w in words if len(w) > 3 and w not in _STOPWORDS}


def filter_sources_by_headline(headline: str, articles: list[NewsItem]) -> list[str]:
    """Keep sources whose article shares a keyword with the headline.

    The first article is always kept.
    """
    keywords = headline_keywords(headline)
    kept = []
    for i, item in enumerate(articles):
        text = f"{item.title} {item.description}".lower()
        if i == 0 or not keywords or any(k in text for k in keywords):
            kept.append(item.url)
    return kept


def _text_field(data: dict, name: str) -> str:
    value = data.get(name)
    return value.strip() if isinstance(value, str) else ""


def parse_issue(text: str, cluster: list[NewsItem], framework: str) -> Optional[IssueItem]:
    """Build an IssueItem from the model's JSON reply; None if the reply is unusable."""
    try:
        data = extract_json(text, "object")
    except ValueError as e:
        logger.warning(f"  [Issue] {e}")
        return None

    headline = _text_field(data, "headline")
    key_facts = data.get("keyFacts")
    if isinstance(key_facts, list):
        key_facts = [str(f).strip() for f in key_facts if isinstance(f, (str, int, float)) and str(f).strip()]
    if not headline or not isinstance(key_facts, list) or not key_facts:
        logger.warning("  [Issue] Reply missing headline or keyFacts")
        return None

    shown = cluster[:MAX_ARTICLES_PER_PROMPT]
    indices = data.get("relevantSourceIndices")
    if not isinstance(indices, list):
        indices = []
    articles = [
        shown[i - 1] for i in indices
        if isinstance(i, int) and not isinstance(i, bool) and 1 <= i <= len(shown)
    ]
    if not articles:
        articles = shown[:DEFAULT_SOURCE_COUNT]
    # de-dup while preserving order
    articles = list({a.url: a for a in articles}.values())

    hashtags = data.get("hashtags")
    return IssueItem(
        headline=headline,
        key_facts=key_facts,
        insight=_text_field(data, "insight"),
        framework=framework,
        sources=filter_sources_by_headline(headline, articles),
        category=_text_field(data, "category") or None,
        one_line_summary=_text_field(data, "oneLineSummary") or None,
        hashtags=[h for h in hashtags if isinstance(h, str)] if isinstance(hashtags, list) else None,
    )


def generate_issue(
    client: anthropic.Anthropic,
    model: str,
    cluster: list[NewsItem],
    domain: dict,
    label: str = "",
) -> Optional[IssueItem]:
    """Ask Claude to synthesize one issue from a news cluster.

    API errors propagate (after retries for overload); malformed output
    returns None.
    """
    primary = cluster[0]
    frameworks = match_frameworks(primary.title, primary.description, domain.get("frameworks", []))
    framework = framework_names(frameworks)
    template = frameworks[0].get("insight_template", "") if frameworks else ""

    prompt = ISSUE_PROMPT.format(
        expert_role=domain.get("expert_role", "industry analyst"),
        label=label or primary.title,
        framework=framework or "General industry analysis",
        insight_template=template or "Why this matters for the industry",
        articles="\n\n".join(
            _format_article(i + 1, item) for i, item in enumerate(cluster[:MAX_ARTICLES_PER_PROMPT])
        ),
    )
    response = generate_with_retry(
        client,
        model=model,
        max_tokens=1500,
        messages=[{"role": "user", "content": prompt}],
    )
    return parse_issue(response_text(response), cluster, framework)
