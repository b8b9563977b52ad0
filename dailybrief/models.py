import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from dateutil import parser as dateparser


def url_id(url: str) -> str:
    """Stable short id for a news URL."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]


def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


@dataclass(frozen=True)
class NewsItem:
    """A fetched article, before clustering."""
    title: str
    url: str
    source: str
    published_at: datetime
    description: str = ""
    category: Optional[str] = None
    fetched_via: str = ""  # "rss", "google_news", "duckduckgo", "brave" or "tavily"
    id: str = ""

    def __post_init__(self):
        if not self.id:
            object.__setattr__(self, "id", url_id(self.url))

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "source": self.source,
            "publishedAt": self.published_at.isoformat(),
            "category": self.category,
            "fetchedVia": self.fetched_via or None,
        })

    @classmethod
    def from_dict(cls, d: dict) -> "NewsItem":
        return cls(
            id=d.get("id", ""),
            title=d["title"],
            description=d.get("description", ""),
            url=d["url"],
            source=d.get("source", ""),
            published_at=dateparser.isoparse(d["publishedAt"]),
            category=d.get("category"),
            fetched_via=d.get("fetchedVia", ""),
        )


@dataclass
class IssueItem:
    """A synthesized brief entry generated from one news cluster."""
    headline: str
    key_facts: list[str]
    insight: str
    framework: str
    sources: list[str] = field(default_factory=list)
    category: Optional[str] = None
    one_line_summary: Optional[str] = None
    hashtags: Optional[list[str]] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "headline": self.headline,
            "keyFacts": list(self.key_facts),
            "insight": self.insight,
            "framework": self.framework,
            "sources": list(self.sources),
            "category": self.category,
            "oneLineSummary": self.one_line_summary,
            "hashtags": list(self.hashtags) if self.hashtags is not None else None,
        })

    @classmethod
    def from_dict(cls, d: dict) -> "IssueItem":
        return cls(
            headline=d.get("headline", ""),
            key_facts=list(d.get("keyFacts", [])),
            insight=d.get("insight", ""),
            framework=d.get("framework", ""),
            sources=list(d.get("sources", [])),
            category=d.get("category"),
            one_line_summary=d.get("oneLineSummary"),
            hashtags=list(d["hashtags"]) if d.get("hashtags") is not None else None,
        )


@dataclass
class BriefReport:
    """One day's brief for one domain."""
    id: str
    date: str  # YYYY-MM-DD, or <domain>-YYYY-MM-DD for secondary domains
    day_of_week: str
    issues: list[IssueItem]
    total_issues: int
    generated_at: str
    markdown: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "dayOfWeek": self.day_of_week,
            "issues": [i.to_dict() for i in self.issues],
            "totalIssues": self.total_issues,
            "generatedAt": self.generated_at,
            "markdown": self.markdown,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "BriefReport":
        issues = [IssueItem.from_dict(i) for i in d.get("issues", [])]
        return cls(
            id=d.get("id", f"brief-{d['date']}"),
            date=d["date"],
            day_of_week=d.get("dayOfWeek", ""),
            issues=issues,
            total_issues=d.get("totalIssues", len(issues)),
            generated_at=d.get("generatedAt", ""),
            markdown=d.get("markdown", ""),
        )


class Action(str, Enum):
    VIEW_BRIEF = "VIEW_BRIEF"
    CLICK_ISSUE = "CLICK_ISSUE"
    SHARE_ISSUE = "SHARE_ISSUE"
    GENERATE_TREND_REPORT = "GENERATE_TREND_REPORT"
    CLICK_SOURCE = "CLICK_SOURCE"
    VIEW_TREND_REPORT = "VIEW_TREND_REPORT"


@dataclass
class ActivityLog:
    """Append-only record of a user action."""
    action: Action
    target_id: str
    metadata: Optional[dict] = None
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    timestamp: int = field(default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "timestamp": self.timestamp,
            "action": self.action.value,
            "targetId": self.target_id,
            "metadata": self.metadata,
            "userAgent": self.user_agent,
            "ip": self.ip,
        })

    @classmethod
    def from_dict(cls, d: dict) -> "ActivityLog":
        return cls(
            id=d["id"],
            timestamp=int(d["timestamp"]),
            action=Action(d["action"]),
            target_id=d.get("targetId", ""),
            metadata=d.get("metadata"),
            user_agent=d.get("userAgent"),
            ip=d.get("ip"),
        )


@dataclass
class IssueCluster:
    """A theme grouping of stored issues, used by the weekly report."""
    cluster_name: str
    theme_description: str
    issue_indices: list[int]

    def to_dict(self) -> dict:
        return {
            "clusterName": self.cluster_name,
            "themeDescription": self.theme_description,
            "issueIndices": list(self.issue_indices),
        }
