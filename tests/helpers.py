from datetime import date, datetime, timezone
from types import SimpleNamespace

from dailybrief.models import BriefReport, IssueItem, NewsItem


def make_issue(headline, sources=(), facts=("fact one", "fact two", "fact three"), **kwargs):
    return IssueItem(
        headline=headline,
        key_facts=list(facts),
        insight=kwargs.pop("insight", "Why it matters."),
        framework=kwargs.pop("framework", "Embedded Finance & BaaS"),
        sources=list(sources),
        **kwargs,
    )


def make_report(date_key, issues=(), day_of_week="Monday", generated_at="2026-10-19T12:00:00+00:00"):
    issues = list(issues)
    return BriefReport(
        id=f"brief-{date_key}",
        date=date_key,
        day_of_week=day_of_week,
        issues=issues,
        total_issues=len(issues),
        generated_at=generated_at,
        markdown=f"# {date_key}\n",
    )


def make_news(title, url=None, description="", source="Finextra", published_at=None, fetched_via="rss"):
    return NewsItem(
        title=title,
        url=url or f"https://example.com/{abs(hash(title))}",
        source=source,
        published_at=published_at or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        description=description,
        fetched_via=fetched_via,
    )


def text_response(text):
    """Stand-in for an anthropic Messages response holding one text block."""
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def grounded_response(text, urls):
    results = [SimpleNamespace(type="web_search_result", url=u, title=u) for u in urls]
    return SimpleNamespace(content=[
        SimpleNamespace(type="server_tool_use", name="web_search"),
        SimpleNamespace(type="web_search_tool_result", content=results),
        SimpleNamespace(type="text", text=text),
    ])


TODAY = date(2026, 10, 19)
