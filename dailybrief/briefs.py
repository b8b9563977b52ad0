"""Brief lifecycle: generate, look up, list, delete, and start report jobs."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import anthropic

from dailybrief.config import domain_prefix, get_domain
from dailybrief.fetchers.collector import collect_news
from dailybrief.jobs import JobReporter, JobRunner
from dailybrief.models import BriefReport, IssueItem
from dailybrief.processing.analyzer import analyze_news
from dailybrief.processing.deduplicator import SemanticCheck, SemanticDuplicateChecker
from dailybrief.reports.builder import build_empty_report, build_report
from dailybrief.reports.trend_report import generate_trend_report
from dailybrief.reports.weekly_report import cluster_issues_by_ai, generate_weekly_report
from dailybrief.storage.base import StorageAdapter, make_date_key, split_date_key, validate_date_key

logger = logging.getLogger(__name__)

WEEKLY_WINDOW_DAYS = 7


class BriefNotFoundError(LookupError):
    pass


class DomainMismatchError(PermissionError):
    """A brief key belongs to a different domain than the one asked for."""


class DeletionRefusedError(PermissionError):
    pass


def today_for(domain: dict, now: Optional[datetime] = None) -> date:
    """Calendar day in the domain's home timezone."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(domain["timezone"])).date()


def resolve_date_key(domain: dict, date_key: str) -> str:
    """Map a requested date onto the domain's key.

    A bare day is read as the domain's own day; a key with another domain's
    prefix is refused.
    """
    validate_date_key(date_key)
    prefix, day = split_date_key(date_key)
    expected = domain_prefix(domain)
    if prefix is None:
        return make_date_key(day, expected)
    if prefix != expected:
        raise DomainMismatchError(f"Brief {date_key} does not belong to domain '{domain['name']}'")
    return date_key


def generate_brief(
    storage: StorageAdapter,
    client: anthropic.Anthropic,
    cfg: dict,
    domain_name: Optional[str] = None,
    force: bool = False,
    now: Optional[datetime] = None,
    collect: Callable[..., list] = collect_news,
    semantic_check: Optional[SemanticCheck] = None,
) -> BriefReport:
    """Produce today's brief for a domain, or return the one already stored.

    With ``force`` the brief is regenerated and replaces the stored one; its
    previous issues are not used as dedup history.
    """
    domain = get_domain(cfg, domain_name)
    day = today_for(domain, now)
    date_key = make_date_key(day, domain_prefix(domain))

    existing = storage.get_brief_by_date(date_key)
    if existing and not force:
        logger.info(f"  Brief {date_key} already exists ({existing.total_issues} issues); use --force to regenerate")
        return existing

    news = collect(cfg, domain, now=now)
    if not news:
        logger.info(f"  No news collected for {domain['name']}; saving an empty brief")
        report = build_empty_report(day, domain)
        storage.save_brief(report)
        return report

    history = storage.get_recent_issues(
        days=domain["dedup_window_days"], domain=domain_prefix(domain), today=day,
    )
    if existing:
        replaced = {i.headline for i in existing.issues}
        history = [h for h in history if h.headline not in replaced]

    semantic_check = semantic_check or SemanticDuplicateChecker(client, cfg["model"])
    issues = analyze_news(client, cfg, domain, news, storage, semantic_check, today=day, history=history)

    report = build_report(issues, day, domain)
    storage.save_brief(report)
    logger.info(f"  Saved brief {date_key} with {len(issues)} issues")
    return report


def get_brief(storage: StorageAdapter, cfg: dict, date_key: str, domain_name: Optional[str] = None) -> BriefReport:
    domain = get_domain(cfg, domain_name)
    key = resolve_date_key(domain, date_key)
    report = storage.get_brief_by_date(key)
    if report is None:
        raise BriefNotFoundError(f"No brief for {key}")
    return report


def latest_brief(storage: StorageAdapter, cfg: dict, domain_name: Optional[str] = None) -> BriefReport:
    domain = get_domain(cfg, domain_name)
    report = storage.get_latest_brief(domain=domain_prefix(domain))
    if report is None:
        raise BriefNotFoundError(f"No briefs stored for {domain['name']}")
    return report


def list_briefs(
    storage: StorageAdapter,
    cfg: dict,
    domain_name: Optional[str] = None,
    limit: int = 30,
    include_issues: bool = False,
) -> list[dict]:
    """Most recent briefs of one domain, as summaries unless ``include_issues``."""
    domain = get_domain(cfg, domain_name)
    briefs = storage.get_all_briefs(limit=limit, domain=domain_prefix(domain))
    if include_issues:
        return [b.to_dict() for b in briefs]
    return [
        {
            "date": b.date,
            "dayOfWeek": b.day_of_week,
            "totalIssues": b.total_issues,
            "generatedAt": b.generated_at,
            "headlines": [i.headline for i in b.issues],
        }
        for b in briefs
    ]


def delete_brief(
    storage: StorageAdapter,
    cfg: dict,
    date_key: str,
    domain_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Delete today's brief of a domain; older briefs are kept as history."""
    domain = get_domain(cfg, domain_name)
    key = resolve_date_key(domain, date_key)
    today_key = make_date_key(today_for(domain, now), domain_prefix(domain))
    if key != today_key:
        raise DeletionRefusedError(f"Only today's brief ({today_key}) can be deleted, not {key}")
    if not storage.delete_brief(key):
        raise BriefNotFoundError(f"No brief for {key}")
    logger.info(f"  Deleted brief {key}")
    return key


# -- report jobs -------------------------------------------------------------

def job_kind(domain: dict, report: str) -> str:
    """``trend``/``weekly`` for the default domain, ``<domain>_trend`` otherwise."""
    prefix = domain_prefix(domain)
    return f"{prefix}_{report}" if prefix else report


def start_trend_report(
    runner: JobRunner,
    client: anthropic.Anthropic,
    cfg: dict,
    issue: IssueItem,
    domain_name: Optional[str] = None,
) -> tuple[str, str]:
    """Start a deep-dive job for one issue; returns (job kind, job id)."""
    domain = get_domain(cfg, domain_name)

    def work(reporter: JobReporter):
        reporter.update("generating", 30, "Researching with web search")
        report = generate_trend_report(client, cfg, issue, domain)
        if not report:
            raise RuntimeError("Trend report generation returned no content")
        return {"report": report}

    kind = job_kind(domain, "trend")
    job_id = runner.start(
        kind, work,
        initial_status="generating", initial_progress=10,
        initial_message="Starting deep-dive analysis",
    )
    return kind, job_id


def start_weekly_report(
    runner: JobRunner,
    storage: StorageAdapter,
    client: anthropic.Anthropic,
    cfg: dict,
    domain_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[str, str]:
    """Start the weekly aggregate job; returns (job kind, job id)."""
    domain = get_domain(cfg, domain_name)
    end = today_for(domain, now)
    start = end - timedelta(days=WEEKLY_WINDOW_DAYS - 1)

    def work(reporter: JobReporter):
        reporter.update("collecting", 10, f"Loading issues from {start} to {end}")
        issues = storage.get_issues_by_date_range(start, end, domain_prefix(domain))
        if not issues:
            raise RuntimeError(f"No issues found between {start} and {end}")

        reporter.update("clustering", 25, f"Grouping {len(issues)} issues into themes")
        clusters = cluster_issues_by_ai(client, cfg["model"], issues, domain)

        reporter.update("generating", 50, f"Writing report across {len(clusters)} themes")
        report = generate_weekly_report(client, cfg, clusters, issues, domain)
        return {"report": report, "clusterCount": len(clusters), "issueCount": len(issues)}

    kind = job_kind(domain, "weekly")
    job_id = runner.start(
        kind, work,
        initial_status="collecting", initial_progress=5,
        initial_message="Weekly report queued",
    )
    return kind, job_id


def get_job_status(runner: JobRunner, kind: str, job_id: str) -> Optional[dict]:
    return runner.get_status(kind, job_id)
