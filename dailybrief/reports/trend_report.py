from __future__ import annotations

import logging
from typing import Optional

import anthropic

from dailybrief.models import IssueItem
from dailybrief.processing.llm import WEB_SEARCH_TOOL, generate_with_retry, grounding_urls, response_text
from dailybrief.reports.sources import with_sources

logger = logging.getLogger(__name__)

TREND_PROMPT = """\
You are a {expert_role}. Write an in-depth trend report in markdown about the news issue below.
Use web search to find current background, figures and reactions beyond the brief.

Headline: {headline}
Key facts:
{facts}
Initial insight ({framework}): {insight}
Known sources:
{sources}

Structure the report with these sections:
## Executive Summary
## Background & Context
## Key Developments
## Strategic Implications
## Outlook
"""


def generate_trend_report(
    client: anthropic.Anthropic,
    cfg: dict,
    issue: IssueItem,
    domain: dict,
) -> Optional[str]:
    """Deep-dive report on a single issue, grounded with web search.

    Returns None if the model produced no text.
    """
    prompt = TREND_PROMPT.format(
        expert_role=domain.get("expert_role", "industry analyst"),
        headline=issue.headline,
        facts="\n".join(f"- {f}" for f in issue.key_facts),
        framework=issue.framework,
        insight=issue.insight,
        sources="\n".join(f"- {u}" for u in issue.sources) or "- (none)",
    )
    response = generate_with_retry(
        client,
        model=cfg["report_model"],
        max_tokens=8000,
        tools=[WEB_SEARCH_TOOL],
        messages=[{"role": "user", "content": prompt}],
    )
    text = response_text(response)
    if not text:
        logger.warning(f"  [Trend] Empty report for \"{issue.headline}\"")
        return None

    research = grounding_urls(response)
    logger.info(f"  [Trend] Report for \"{issue.headline}\": {len(text)} chars, {len(research)} grounded sources")
    return with_sources(text, issue.sources, research)
