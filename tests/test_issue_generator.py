import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from dailybrief.config import get_domain
from dailybrief.processing.analyzer import analyze_news
from dailybrief.processing.issue_generator import filter_sources_by_headline, generate_issue, parse_issue
from helpers import make_issue, make_news, make_report, text_response

CLUSTER = [
    make_news("Stripe launches stablecoin accounts in 100 countries", "https://a.com/stripe-stablecoin",
              "Stripe stablecoin financial accounts expand globally"),
    make_news("Stripe stablecoin push worries banks", "https://b.com/banks", "Banks react to Stripe"),
    make_news("Weekly fintech funding roundup", "https://c.com/funding", "Funding rounds this week"),
]


def _reply(**overrides):
    data = {
        "headline": "Stripe takes stablecoin accounts global",
        "keyFacts": ["100 countries", "USDC balances", "Bridge powered"],
        "insight": "Platforms absorb banking functions.",
        "oneLineSummary": "Stripe goes global with stablecoins.",
        "category": "Payments",
        "hashtags": ["#Stripe", "#Stablecoin"],
        "relevantSourceIndices": [1, 2, 3],
    }
    data.update(overrides)
    return "Here you go:\n" + json.dumps(data)


def test_parse_maps_indices_and_filters_unrelated_sources():
    issue = parse_issue(_reply(), CLUSTER, "Embedded Finance & BaaS")
    assert issue.headline == "Stripe takes stablecoin accounts global"
    assert issue.key_facts == ["100 countries", "USDC balances", "Bridge powered"]
    # the funding roundup shares no headline keyword
    assert issue.sources == ["https://a.com/stripe-stablecoin", "https://b.com/banks"]
    assert issue.framework == "Embedded Finance & BaaS"
    assert issue.hashtags == ["#Stripe", "#Stablecoin"]


def test_parse_ignores_out_of_range_indices():
    issue = parse_issue(_reply(relevantSourceIndices=[2, 9, 0, "x"]), CLUSTER, "fw")
    assert issue.sources == ["https://b.com/banks"]


def test_parse_defaults_to_leading_articles_without_indices():
    issue = parse_issue(_reply(relevantSourceIndices=[]), CLUSTER, "fw")
    assert issue.sources[0] == "https://a.com/stripe-stablecoin"


def test_parse_malformed_output_returns_none():
    assert parse_issue("I cannot help with that.", CLUSTER, "fw") is None
    assert parse_issue('{"headline": ""}', CLUSTER, "fw") is None
    assert parse_issue('{"headline": "x", "keyFacts": "not a list"}', CLUSTER, "fw") is None
    assert parse_issue('{"headline": null, "keyFacts": ["a"]}', CLUSTER, "fw") is None
    assert parse_issue('{"headline": "x", "keyFacts": [null, {"a": 1}]}', CLUSTER, "fw") is None


@pytest.mark.parametrize("indices", [1, "2", None, {"1": 1}, [True]])
def test_parse_unusable_indices_fall_back_to_leading_articles(indices):
    issue = parse_issue(_reply(relevantSourceIndices=indices), CLUSTER, "fw")
    assert issue.sources == ["https://a.com/stripe-stablecoin", "https://b.com/banks"]


def test_parse_drops_mistyped_fields():
    issue = parse_issue(
        _reply(keyFacts=["100 countries", None, 3], insight=None, category=7, hashtags=["#Stripe", 1]),
        CLUSTER, "fw",
    )
    assert issue.key_facts == ["100 countries", "3"]
    assert issue.insight == ""
    assert issue.category is None
    assert issue.hashtags == ["#Stripe"]


def test_first_source_always_kept():
    assert filter_sources_by_headline("Completely unrelated words", CLUSTER[2:]) == ["https://c.com/funding"]


def test_generate_issue_uses_matched_framework(cfg):
    client = MagicMock()
    client.messages.create.return_value = text_response(_reply())
    issue = generate_issue(client, "test-model", CLUSTER, get_domain(cfg, "fintech"), label="Stripe")
    prompt = client.messages.create.call_args.kwargs["messages"][0]["content"]
    assert '"Stripe"' in prompt
    assert "[1] Stripe launches stablecoin accounts" in prompt
    assert issue.framework == "Embedded Finance & BaaS, Decentralization & Digital Assets"


# -- analyzer -----------------------------------------------------------------

def _analyzer_news():
    return [
        make_news("Stripe launches stablecoin accounts", "https://a.com/1"),
        make_news("Stripe adds crypto payouts", "https://a.com/2"),
        make_news("SEC regulation of crypto exchanges tightens", "https://a.com/3"),
        make_news("Bank earnings beat estimates", "https://a.com/4"),
    ]


def test_analyze_generates_one_issue_per_cluster(cfg, memory_storage):
    client = MagicMock()
    client.messages.create.side_effect = [
        text_response(_reply(headline="Stripe doubles down on stablecoins", relevantSourceIndices=[1])),
        text_response(_reply(headline="Regulators tighten exchange rules", relevantSourceIndices=[1])),
        text_response(_reply(headline="Bank earnings beat estimates", relevantSourceIndices=[1])),
    ]
    issues = analyze_news(client, cfg, get_domain(cfg, "fintech"), _analyzer_news(), memory_storage,
                          today=date(2026, 10, 19))
    assert [i.headline for i in issues] == [
        "Stripe doubles down on stablecoins", "Regulators tighten exchange rules", "Bank earnings beat estimates",
    ]


def test_analyze_skips_clusters_already_covered(cfg, memory_storage):
    memory_storage.save_brief(make_report("2026-10-18", [
        make_issue("Stripe launches stablecoin accounts", ["https://old.com/1"]),
    ]))
    client = MagicMock()
    client.messages.create.side_effect = [
        text_response(_reply(headline="Regulators tighten exchange rules", relevantSourceIndices=[1])),
        text_response(_reply(headline="Bank earnings beat estimates", relevantSourceIndices=[1])),
    ]
    issues = analyze_news(client, cfg, get_domain(cfg, "fintech"), _analyzer_news(), memory_storage,
                          today=date(2026, 10, 19))
    # the Stripe cluster's lead title matches yesterday's headline, so no model call is made for it
    assert client.messages.create.call_count == 2
    assert [i.headline for i in issues] == ["Regulators tighten exchange rules", "Bank earnings beat estimates"]


def test_analyze_rejects_duplicates_and_survives_failures(cfg, memory_storage):
    memory_storage.save_brief(make_report("2026-10-17", [
        make_issue("Old story", ["https://a.com/1"]),
    ]))
    client = MagicMock()
    client.messages.create.side_effect = [
        RuntimeError("network down"),
        text_response(_reply(headline="Regulators tighten exchange rules", relevantSourceIndices=[1])),
        text_response("not json"),
    ]
    issues = analyze_news(client, cfg, get_domain(cfg, "fintech"), _analyzer_news(), memory_storage,
                          today=date(2026, 10, 19))
    # cluster 1 errored, cluster 2 cites https://a.com/1 like the stored issue, cluster 3 was malformed
    assert issues == []


def test_analyze_dedups_within_the_same_run(cfg, memory_storage):
    client = MagicMock()
    client.messages.create.side_effect = [
        text_response(_reply(headline="Crypto rules tighten for Stripe and exchanges", relevantSourceIndices=[1])),
        text_response(_reply(headline="Crypto rules tighten for Stripe and exchanges", relevantSourceIndices=[1])),
        text_response(_reply(headline="Bank earnings beat estimates", relevantSourceIndices=[1])),
    ]
    issues = analyze_news(client, cfg, get_domain(cfg, "fintech"), _analyzer_news(), memory_storage,
                          today=date(2026, 10, 19))
    assert [i.headline for i in issues] == [
        "Crypto rules tighten for Stripe and exchanges", "Bank earnings beat estimates",
    ]


def test_analyze_respects_max_issues(cfg, memory_storage):
    cfg["domains"]["fintech"]["max_issues"] = 1
    client = MagicMock()
    client.messages.create.return_value = text_response(_reply(relevantSourceIndices=[1]))
    issues = analyze_news(client, cfg, get_domain(cfg, "fintech"), _analyzer_news(), memory_storage,
                          today=date(2026, 10, 19))
    assert len(issues) == 1
    assert client.messages.create.call_count == 1
