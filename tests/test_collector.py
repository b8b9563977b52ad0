from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import httpx

from dailybrief.config import get_domain
from dailybrief.fetchers import rss_fetcher, web_searcher
from dailybrief.fetchers.collector import collect_news, filter_news, is_relevant, rank_news, source_score
from helpers import make_news

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Finextra</title>
<item><title>Stripe launches stablecoin accounts</title><link>https://finextra.com/1</link>
<description>&lt;p&gt;Stripe news&lt;/p&gt;</description><pubDate>Mon, 19 Oct 2026 09:00:00 GMT</pubDate></item>
<item><title></title><link>https://finextra.com/empty</link></item>
<item><title>Klarna IPO</title><link>https://finextra.com/2</link></item>
</channel></rss>"""


def _domain(cfg, **overrides):
    domain = get_domain(cfg, "fintech")
    domain.update(overrides)
    return domain


def test_filter_drops_stale_excluded_and_repeated(cfg):
    domain = _domain(cfg, exclude_keywords=["sponsored"], exclude_patterns=[r"(?i)advertisement"])
    items = [
        make_news("Stripe launches stablecoin accounts", "https://www.a.com/1?utm_source=x", published_at=NOW),
        make_news("Different title entirely", "https://a.com/1", published_at=NOW),
        make_news("Stripe Launches Stablecoin Accounts!", "https://b.com/2", published_at=NOW),
        make_news("Old news about banks", "https://c.com/3", published_at=NOW - timedelta(hours=30)),
        make_news("Sponsored: best cards", "https://d.com/4", published_at=NOW),
        make_news("An ADVERTISEMENT feature", "https://e.com/5", published_at=NOW),
        make_news("Klarna files for IPO", "https://f.com/6", published_at=NOW),
    ]
    kept = filter_news(items, domain, now=NOW, threshold=80)
    assert [i.title for i in kept] == ["Stripe launches stablecoin accounts", "Klarna files for IPO"]


def test_relevance_filter_applies_to_general_feeds_only():
    keywords = ["battery", "CATL"]
    assert is_relevant(make_news("Apple ships new phone", source="The Verge"), keywords, []) is False
    assert is_relevant(make_news("CATL unveils cell", source="The Verge"), keywords, []) is True
    assert is_relevant(make_news("Charging network grows", source="Electrive"), keywords, ["Electrive"]) is True
    assert is_relevant(make_news("Apple ships new phone", fetched_via="google_news"), keywords, []) is True


def test_battery_domain_filters_off_topic_feed_items(cfg):
    domain = get_domain(cfg, "battery")
    items = [
        make_news("Apple ships new phone", source="The Verge", published_at=NOW),
        make_news("CATL starts sodium-ion production", source="The Verge", published_at=NOW),
        make_news("Charging network grows", source="Electrive", published_at=NOW),
    ]
    assert [i.title for i in filter_news(items, domain, now=NOW)] == [
        "CATL starts sodium-ion production", "Charging network grows",
    ]


def test_rank_by_source_priority_then_recency():
    priority = {"finextra.com": 100, "techcrunch.com": 95}
    older = make_news("a", "https://finextra.com/a", published_at=NOW - timedelta(hours=2))
    newer = make_news("b", "https://finextra.com/b", published_at=NOW)
    tc = make_news("c", "https://techcrunch.com/c", published_at=NOW)
    unknown = make_news("d", "https://blog.example/d", published_at=NOW)
    assert rank_news([unknown, older, tc, newer], priority) == [newer, older, tc, unknown]
    assert source_score("https://blog.example/d", priority) == 50


def _http_response(text, url="https://feed"):
    return httpx.Response(200, text=text, request=httpx.Request("GET", url))


def test_fetch_feed_parses_entries():
    with patch.object(rss_fetcher.httpx, "get", return_value=_http_response(RSS)):
        items = rss_fetcher.fetch_feed("Finextra", "https://finextra.com/rss")
    assert [i.title for i in items] == ["Stripe launches stablecoin accounts", "Klarna IPO"]
    assert items[0].description == "Stripe news"
    assert items[0].published_at == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    assert items[0].source == "Finextra"
    assert items[0].fetched_via == "rss"


def test_fetch_feed_error_yields_nothing():
    with patch.object(rss_fetcher.httpx, "get", side_effect=httpx.ConnectError("down")):
        assert rss_fetcher.fetch_feed("Broken", "https://broken/rss") == []


def test_one_failing_feed_does_not_block_others():
    def fake_get(url, **kwargs):
        if "broken" in url:
            raise httpx.ConnectError("down")
        return _http_response(RSS, url)

    feeds = [{"name": "Broken", "url": "https://broken/rss"}, {"name": "Finextra", "url": "https://finextra.com/rss"}]
    with patch.object(rss_fetcher.httpx, "get", side_effect=fake_get):
        assert len(rss_fetcher.fetch_rss_feeds(feeds)) == 2


def test_google_news_url():
    url = rss_fetcher.google_news_url("Open Banking")
    assert url == "https://news.google.com/rss/search?q=Open%20Banking%20when%3A1d&hl=en-US&gl=US&ceid=US:en"


def test_brave_search():
    payload = {"results": [
        {"title": "Stripe news", "url": "https://x.com/1", "description": "d", "meta_url": {"hostname": "x.com"}},
        {"title": "", "url": "https://x.com/2"},
    ]}
    response = httpx.Response(200, json=payload, request=httpx.Request("GET", web_searcher.BRAVE_NEWS_URL))
    with patch.object(web_searcher.httpx, "get", return_value=response) as get:
        items = web_searcher.search_brave("Stripe", "key")
    assert [(i.title, i.source, i.fetched_via) for i in items] == [("Stripe news", "x.com", "brave")]
    assert get.call_args.kwargs["headers"]["X-Subscription-Token"] == "key"
    assert get.call_args.kwargs["params"]["freshness"] == "pd"


def test_tavily_search_error_is_skipped():
    with patch.object(web_searcher.httpx, "post", side_effect=httpx.ReadTimeout("slow")):
        assert web_searcher.search_tavily("Stripe", "key") == []


def test_search_skips_providers_without_keys():
    with patch.object(web_searcher, "search_duckduckgo", return_value=[make_news("ddg")]) as ddg, \
         patch.object(web_searcher, "search_brave") as brave, \
         patch.object(web_searcher, "search_tavily") as tavily:
        items = web_searcher.search_all_queries(["Stripe", "Plaid"])
    assert len(items) == 2
    assert ddg.call_count == 2
    brave.assert_not_called()
    tavily.assert_not_called()


def test_collect_news_combines_filters_and_ranks(cfg):
    cfg["domains"]["fintech"]["source_priority"] = {"finextra.com": 100}
    feed_items = [make_news("Stripe launches stablecoin accounts", "https://finextra.com/1", published_at=NOW)]
    gnews_items = [make_news("Plaid raises funding", "https://news.google.com/a", published_at=NOW,
                             fetched_via="google_news")]
    search_items = [make_news("Stripe Launches Stablecoin Accounts", "https://other.com/1", published_at=NOW)]

    with patch("dailybrief.fetchers.collector.fetch_rss_feeds", return_value=feed_items), \
         patch("dailybrief.fetchers.collector.fetch_google_news", return_value=gnews_items) as gnews, \
         patch("dailybrief.fetchers.collector.search_all_queries", return_value=search_items):
        news = collect_news(cfg, get_domain(cfg, "fintech"), now=NOW)

    assert [i.url for i in news] == ["https://finextra.com/1", "https://news.google.com/a"]
    assert gnews.call_args.args[0] == ["Stripe", "Fintech"]
