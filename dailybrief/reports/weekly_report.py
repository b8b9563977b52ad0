"""Weekly aggregate: group the week's issues into themes, then write one report."""

from __future__ import annotations

import logging
import time
from typing import Callable

import anthropic

from dailybrief.models import IssueCluster, IssueItem
from dailybrief.processing.llm import (
    WEB_SEARCH_TOOL,
    extract_json,
    generate_with_retry,
    grounding_urls,
    response_text,
)
from dailybrief.reports.sources import with_sources

logger = logging.getLogger(__name__)

FALLBACK_CLUSTER_NAME = "Weekly Comprehensive Trends"
FALLBACK_NOTE = "> Note: the primary report model was unavailable; this report was written by the fallback model.\n\n"

CLUSTER_PROMPT = """\
You are a {expert_role}. Group the news issues below into 3-6 strategic themes.
Every issue should belong to exactly one theme.

ISSUES:
{issues}

Respond with JSON only:
{{"clusters": [{{"clusterName": "...", "themeDescription": "...", "issueIndices": [0, 3]}}]}}"""

WEEKLY_PROMPT = """\
You are a {expert_role}. Write a weekly strategic report in markdown covering the themes below.
Use web search to verify figures and add context from the past week.

{themes}

Structure:
## Weekly Overview
## Theme Analysis (one subsection per theme)
## Cross-Theme Implications
## What to Watch Next Week
"""


def _issue_line(index: int, issue: IssueItem) -> str:
    summary = issue.one_line_summary or (issue.key_facts[0] if issue.key_facts else "")
    return f"[{index}] {issue.headline} — {summary}"


def fallback_clusters(issues: list[IssueItem]) -> list[IssueCluster]:
    return [IssueCluster(
        cluster_name=FALLBACK_CLUSTER_NAME,
        theme_description="All issues collected this week",
        issue_indices=list(range(len(issues))),
    )]


def cluster_issues_by_ai(
    client: anthropic.Anthropic,
    model: str,
    issues: list[IssueItem],
    domain: dict,
) -> list[IssueCluster]:
    """Ask Claude to group issues into themes.

    Out-of-range indices are dropped; any failure falls back to a single
    cluster holding every issue.
    """
    if not issues:
        return []

    prompt = CLUSTER_PROMPT.format(
        expert_role=domain.get("expert_role", "industry analyst"),
        issues="\n".join(_issue_line(i, issue) for i, issue in enumerate(issues)),
    )
    try:
        response = generate_with_retry(
            client, model=model, max_tokens=2000,
            messages=[{"role": "user", "content": prompt}],
        )
        data = extract_json(response_text(response), "object")
    except Exception as e:
        logger.warning(f"  [Weekly] AI clustering failed ({e}); using a single cluster")
        return fallback_clusters(issues)

    raw_clusters = data.get("clusters")
    clusters = []
    for raw in raw_clusters if isinstance(raw_clusters, list) else []:
        if not isinstance(raw, dict):
            continue
        raw_indices = raw.get("issueIndices")
        indices = [
            i for i in (raw_indices if isinstance(raw_indices, list) else [])
            if isinstance(i, int) and not isinstance(i, bool) and 0 <= i < len(issues)
        ]
        if not indices:
            continue
        clusters.append(IssueCluster(
            cluster_name=str(raw.get("clusterName", "Untitled theme")),
            theme_description=str(raw.get("themeDescription", "")),
            issue_indices=indices,
        ))

    if not clusters:
        logger.warning("  [Weekly] AI clustering returned no usable clusters; using a single cluster")
        return fallback_clusters(issues)
    return clusters


def _themes_text(clusters: list[IssueCluster], issues: list[IssueItem]) -> str:
    blocks = []
    for n, cluster in enumerate(clusters, start=1):
        lines = [f"Theme {n}: {cluster.cluster_name}", f"Description: {cluster.theme_description}"]
        for i in cluster.issue_indices:
            issue = issues[i]
            lines.append(f"- {issue.headline}")
            lines += [f"    * {fact}" for fact in issue.key_facts]
            if issue.insight:
                lines.append(f"    Insight: {issue.insight}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def generate_weekly_report(
    client: anthropic.Anthropic,
    cfg: dict,
    clusters: list[IssueCluster],
    issues: list[IssueItem],
    domain: dict,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Write the weekly report, trying the report model before the fallback model.

    Raises the fallback model's error if both fail.
    """
    prompt = WEEKLY_PROMPT.format(
        expert_role=domain.get("expert_role", "industry analyst"),
        themes=_themes_text(clusters, issues),
    )
    request = dict(
        max_tokens=10000,
        tools=[WEB_SEARCH_TOOL],
        messages=[{"role": "user", "content": prompt}],
    )

    note = ""
    try:
        response = generate_with_retry(client, retries=2, delay=3.0, sleep=sleep, model=cfg["report_model"], **request)
    except Exception as e:
        logger.warning(f"  [Weekly] {cfg['report_model']} failed ({e}); trying {cfg['fallback_model']}")
        response = generate_with_retry(client, sleep=sleep, model=cfg["fallback_model"], **request)
        note = FALLBACK_NOTE

    text = response_text(response)
    if not text:
        raise RuntimeError("Weekly report model returned no text")

    brief_urls = [url for issue in issues for url in issue.sources]
    return note + with_sources(text, brief_urls, grounding_urls(response))
