from __future__ import annotations

import logging
from datetime import date
from typing import Optional

import anthropic

from dailybrief.config import domain_prefix
from dailybrief.models import IssueItem, NewsItem
from dailybrief.processing.clusterer import label_clusters
from dailybrief.processing.deduplicator import SemanticCheck, is_duplicate
from dailybrief.processing.issue_generator import generate_issue
from dailybrief.processing.similarity import similarity
from dailybrief.storage.base import StorageAdapter

logger = logging.getLogger(__name__)

# Lead articles this close to an already published headline are not worth a model call
PRECHECK_THRESHOLD = 0.6


def analyze_news(
    client: anthropic.Anthropic,
    cfg: dict,
    domain: dict,
    news: list[NewsItem],
    storage: StorageAdapter,
    semantic_check: Optional[SemanticCheck] = None,
    today: Optional[date] = None,
    history: Optional[list[IssueItem]] = None,
) -> list[IssueItem]:
    """Turn the day's news into de-duplicated issues.

    The largest clusters are tried first, up to ``max_issues``. Each
    generated issue is checked against the domain's recent history and
    against issues already accepted in this run. ``history`` overrides the
    issues loaded from storage.
    """
    clusters = label_clusters(news, domain.get("key_terms", []), domain.get("fallback_cluster", "Global Trends"))
    logger.info(f"  {len(clusters)} clusters: " + ", ".join(f"{label} ({len(m)})" for label, m in clusters))

    if history is None:
        history = storage.get_recent_issues(
            days=domain.get("dedup_window_days", 3), domain=domain_prefix(domain), today=today,
        )
    logger.info(f"  Checking against {len(history)} issues from the last {domain.get('dedup_window_days', 3)} days")

    accepted: list[IssueItem] = []
    for label, members in clusters[: domain.get("max_issues", 5)]:
        lead = members[0]
        if any(similarity(lead.title, past.headline) > PRECHECK_THRESHOLD for past in history):
            logger.info(f"  [Skip] {label}: lead story already covered (\"{lead.title}\")")
            continue

        try:
            issue = generate_issue(client, cfg["model"], members, domain, label=label)
        except Exception as e:
            logger.error(f"  [Issue] {label}: generation failed: {e}")
            continue
        if issue is None:
            logger.warning(f"  [Issue] {label}: unusable model output, skipping cluster")
            continue

        if is_duplicate(issue, history + accepted, semantic_check):
            logger.info(f"  [Skip] {label}: duplicate of a recent issue")
            continue

        logger.info(f"  [Issue] {label}: {issue.headline}")
        accepted.append(issue)

    return accepted
