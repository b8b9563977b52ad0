"""User-requested reports over chosen issues, URLs and pasted text, under a daily per-IP quota."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

import anthropic

from dailybrief.fetchers.content_fetcher import FetchedArticle, fetch_content_from_urls
from dailybrief.models import IssueItem
from dailybrief.processing.llm import generate_with_retry, response_text
from dailybrief.storage.base import StorageAdapter

logger = logging.getLogger(__name__)

USAGE_LIMIT_TTL_SECONDS = 86400
CART_REQUEST_LIST = "cart_request_list"
MAX_CART_REQUESTS = 100


class ReportType(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"


class SelectionMethod(str, Enum):
    AUTO_DATE = "AUTO_DATE"
    MANUAL_SELECTION = "MANUAL_SELECTION"
    MANUAL_ONLY = "MANUAL_ONLY"


class UsageLimitExceededError(Exception):
    def __init__(self, ip: str, limit: int):
        super().__init__(f"Daily report limit of {limit} reached for {ip}")
        self.ip = ip
        self.limit = limit


@dataclass
class ReportRequest:
    report_type: ReportType = ReportType.CUSTOM
    selection_method: SelectionMethod = SelectionMethod.MANUAL_SELECTION
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    domain: Optional[str] = None  # storage key prefix; None for the default domain
    issues: list[IssueItem] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    texts: list[str] = field(default_factory=list)


REPORT_PROMPT = """\
You are a senior industry analyst. Write a {kind} report in markdown that synthesizes the material below
into themes, implications and recommended actions. Cite the source URLs you rely on.

{material}
"""


def select_issues(storage: StorageAdapter, request: ReportRequest) -> list[IssueItem]:
    if request.selection_method is SelectionMethod.AUTO_DATE:
        if not request.start_date or not request.end_date:
            raise ValueError("AUTO_DATE selection needs start_date and end_date")
        return storage.get_issues_by_date_range(request.start_date, request.end_date, request.domain)
    if request.selection_method is SelectionMethod.MANUAL_SELECTION:
        return list(request.issues)
    return []


def _material(issues: list[IssueItem], articles: list[FetchedArticle], texts: list[str]) -> str:
    parts = []
    if issues:
        parts.append("BRIEF ISSUES:")
        for n, issue in enumerate(issues, start=1):
            facts = "\n".join(f"  - {f}" for f in issue.key_facts)
            parts.append(f"{n}. {issue.headline}\n{facts}\n  Insight: {issue.insight}\n  Sources: {', '.join(issue.sources)}")
    if articles:
        parts.append("ARTICLES:")
        parts += [f"### {a.title}\nURL: {a.url}\n{a.text}" for a in articles]
    if texts:
        parts.append("PASTED NOTES:")
        parts += [f"---\n{t}" for t in texts]
    return "\n\n".join(parts)


def generate_aggregated_report(
    client: anthropic.Anthropic,
    cfg: dict,
    report_type: ReportType,
    issues: list[IssueItem],
    articles: Optional[list[FetchedArticle]] = None,
    texts: Optional[list[str]] = None,
) -> str:
    articles = articles or []
    texts = [t for t in (texts or []) if t.strip()]
    if not issues and not articles and not texts:
        raise ValueError("No issues, articles or text to report on")

    prompt = REPORT_PROMPT.format(kind=report_type.value.lower(), material=_material(issues, articles, texts))
    last_error: Optional[Exception] = None
    for model in (cfg["report_model"], cfg["fallback_model"]):
        try:
            response = generate_with_retry(
                client, model=model, max_tokens=8000,
                messages=[{"role": "user", "content": prompt}],
            )
            text = response_text(response)
            if text:
                return text
            last_error = RuntimeError(f"{model} returned no text")
        except Exception as e:
            logger.warning(f"  [Report] {model} failed: {e}")
            last_error = e
    raise RuntimeError("Failed to generate report.") from last_error


class UsageLimiter:
    """Per-IP daily quota on an atomic counter ``usage_limit:<day>:<ip>``."""

    def __init__(self, storage: StorageAdapter, limit: int = 3, ttl_seconds: int = USAGE_LIMIT_TTL_SECONDS):
        self.storage = storage
        self.limit = limit
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(ip: str, day: date) -> str:
        return f"usage_limit:{day.isoformat()}:{ip}"

    def used(self, ip: str, day: date) -> int:
        return int(self.storage.kv_get(self.key(ip, day)) or 0)

    def remaining(self, ip: str, day: date) -> int:
        return max(self.limit - self.used(ip, day), 0)

    def acquire(self, ip: str, day: date) -> int:
        """Take one unit of quota; returns how many remain.

        The counter is incremented before the check so concurrent callers
        cannot both slip under the limit.
        """
        count = self.storage.kv_incr(self.key(ip, day), 1, ttl_seconds=self.ttl_seconds)
        if count > self.limit:
            self.storage.kv_incr(self.key(ip, day), -1)
            raise UsageLimitExceededError(ip, self.limit)
        return self.limit - count

    def refund(self, ip: str, day: date):
        self.storage.kv_incr(self.key(ip, day), -1)


def record_cart_request(storage: StorageAdapter, entry: dict):
    requests = storage.kv_get(CART_REQUEST_LIST) or []
    requests.insert(0, entry)
    storage.kv_set(CART_REQUEST_LIST, requests[:MAX_CART_REQUESTS])


def get_cart_requests(storage: StorageAdapter) -> list[dict]:
    return storage.kv_get(CART_REQUEST_LIST) or []


def clear_cart_requests(storage: StorageAdapter):
    storage.kv_delete(CART_REQUEST_LIST)


def request_custom_report(
    storage: StorageAdapter,
    client: anthropic.Anthropic,
    cfg: dict,
    request: ReportRequest,
    ip: str,
    user_agent: Optional[str] = None,
    today: Optional[date] = None,
    fetch_articles=fetch_content_from_urls,
) -> dict:
    """Generate a custom report for a visitor, charging their daily quota.

    A failed generation gives the quota unit back.
    """
    today = today or date.today()
    limiter = UsageLimiter(storage, limit=cfg.get("usage_limit_per_day", 3))
    remaining = limiter.acquire(ip, today)

    try:
        issues = select_issues(storage, request)
        articles = fetch_articles(request.urls) if request.urls else []
        report = generate_aggregated_report(client, cfg, request.report_type, issues, articles, request.texts)
    except Exception:
        limiter.refund(ip, today)
        raise

    record_cart_request(storage, {
        "id": str(uuid.uuid4()),
        "timestamp": int(datetime.now(timezone.utc).timestamp() * 1000),
        "ip": ip,
        "userAgent": user_agent,
        "reportType": request.report_type.value,
        "selectionMethod": request.selection_method.value,
        "issueCount": len(issues),
        "urlCount": len(request.urls),
        "textCount": len(request.texts),
        "headlines": [i.headline for i in issues][:20],
    })
    logger.info(f"  [Report] {request.report_type.value} report for {ip} ({remaining} left today)")
    return {"report": report, "issueCount": len(issues), "remaining": remaining}
