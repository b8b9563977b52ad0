"""Rebuild the sources section of long-form reports from known URLs.

Model-written reference lists are unreliable, so whatever the model wrote
under a Sources/References heading is replaced by the brief's own citations
followed by the URLs the web search actually returned.
"""

import re

_SOURCES_HEADING_RE = re.compile(
    r"^#{1,6}\s*(?:\d+\.\s*)?(?:sources|references)\b.*$", re.IGNORECASE | re.MULTILINE,
)


def strip_sources_section(text: str) -> str:
    match = _SOURCES_HEADING_RE.search(text)
    return text[: match.start()].rstrip() if match else text.rstrip()


def sources_section(brief_urls: list[str], research_urls: list[str]) -> str:
    seen: set[str] = set()
    lines = ["## Sources", ""]
    for label, urls in (("Brief Origin", brief_urls), ("Deep Research", research_urls)):
        for url in urls:
            if url in seen:
                continue
            seen.add(url)
            lines.append(f"- [{label}] {url}")
    if len(lines) == 2:
        lines.append("- (no sources)")
    return "\n".join(lines)


def with_sources(text: str, brief_urls: list[str], research_urls: list[str]) -> str:
    return f"{strip_sources_section(text)}\n\n{sources_section(brief_urls, research_urls)}\n"
