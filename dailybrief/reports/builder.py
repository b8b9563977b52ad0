from datetime import date, datetime, timezone
from typing import Optional

from dailybrief.config import domain_prefix
from dailybrief.models import BriefReport, IssueItem
from dailybrief.storage.base import make_date_key

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
RULE = "=" * 80


def build_report(
    issues: list[IssueItem],
    day: date,
    domain: dict,
    generated_at: Optional[datetime] = None,
) -> BriefReport:
    """Assemble the dated brief for one domain, including its markdown form."""
    date_key = make_date_key(day, domain_prefix(domain))
    day_of_week = DAY_NAMES[day.weekday()]
    generated_at = generated_at or datetime.now(timezone.utc)
    return BriefReport(
        id=f"brief-{date_key}",
        date=date_key,
        day_of_week=day_of_week,
        issues=list(issues),
        total_issues=len(issues),
        generated_at=generated_at.isoformat(),
        markdown=render_markdown(issues, day, domain.get("label", "Daily Brief")),
    )


def build_empty_report(day: date, domain: dict, generated_at: Optional[datetime] = None) -> BriefReport:
    return build_report([], day, domain, generated_at)


def render_markdown(issues: list[IssueItem], day: date, title: str) -> str:
    lines = [
        RULE,
        f"{DAY_NAMES[day.weekday()]}, {day.strftime('%B')} {day.day}, {day.year}",
        f"<{title}>",
        RULE,
        "",
    ]
    if not issues:
        lines += ["No major issues were collected today.", ""]

    for n, issue in enumerate(issues, start=1):
        lines.append(f"Issue {n}. {issue.headline}")
        lines += [f"- {fact}" for fact in issue.key_facts]
        lines += ["", f"Insight ({issue.framework}): {issue.insight}", ""]
        if issue.sources:
            lines.append("Sources:")
            lines += [f"  {url}" for url in issue.sources]
            lines.append("")
        lines.append("-" * 80)
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
