import pytest
import yaml

from dailybrief.config import check_term_alignment, domain_prefix, get_domain, load_config


def test_env_overrides_and_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"anthropic_api_key": "from-file", "domains": {"fintech": {}}}))
    cfg = load_config(path, env={"ANTHROPIC_API_KEY": "from-env", "TAVILY_API_KEY": ""})
    assert cfg["anthropic_api_key"] == "from-env"
    assert cfg["tavily_api_key"] == ""
    assert cfg["usage_limit_per_day"] == 3
    assert cfg["db_path"].endswith("data/dailybrief.db")


def test_domain_profiles(cfg):
    fintech = get_domain(cfg)
    battery = get_domain(cfg, "battery")
    assert fintech["name"] == "fintech" and domain_prefix(fintech) is None
    assert domain_prefix(battery) == "battery"
    assert battery["max_issues"] == 5
    with pytest.raises(KeyError):
        get_domain(cfg, "biotech")


def test_term_alignment(cfg):
    assert check_term_alignment(get_domain(cfg, "fintech")) == []
    assert check_term_alignment(get_domain(cfg, "battery")) == ["CATL"]


def test_shipped_config_domains_load():
    cfg = load_config(env={})
    for name in cfg["domains"]:
        domain = get_domain(cfg, name)
        assert domain["feeds"]
        assert domain["frameworks"]
