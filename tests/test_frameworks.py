import logging

from dailybrief.config import check_term_alignment
from dailybrief.processing.frameworks import framework_names, match_frameworks

FRAMEWORKS = [
    {"name": "Embedded Finance", "triggers": ["baas", "embedded finance", "api"]},
    {"name": "Digital Assets", "triggers": ["crypto", "stablecoin", "tokenization"]},
    {"name": "Payments", "triggers": ["payments", "cross-border"]},
]


def test_ranks_by_trigger_hits_and_keeps_top_two():
    matched = match_frameworks("Stablecoin payments go cross-border", "crypto rails for payments", FRAMEWORKS)
    assert [fw["name"] for fw in matched] == ["Digital Assets", "Payments"]


def test_defaults_to_first_framework():
    assert match_frameworks("Quarterly earnings", "", FRAMEWORKS) == [FRAMEWORKS[0]]


def test_names_joined():
    assert framework_names(FRAMEWORKS[:2]) == "Embedded Finance, Digital Assets"


def test_term_alignment_reports_orphans(caplog):
    domain = {"name": "fintech", "key_terms": ["Crypto", "Payments", "Insurance"], "frameworks": FRAMEWORKS}
    with caplog.at_level(logging.WARNING):
        assert check_term_alignment(domain) == ["Insurance"]
    assert "Insurance" in caplog.text
