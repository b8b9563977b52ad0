import logging
import os
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = PROJECT_ROOT / "config.yaml"

# Secrets that may come from the environment instead of config.yaml
_ENV_SECRETS = {
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "BRAVE_SEARCH_API_KEY": "brave_api_key",
    "TAVILY_API_KEY": "tavily_api_key",
}


def load_config(path: Path = CONFIG_PATH, env: dict | None = None) -> dict:
    """Load config.yaml, with env var overrides and defaults filled in."""
    env = os.environ if env is None else env
    with open(path) as f:
        cfg = yaml.safe_load(f) or {}

    for var, key in _ENV_SECRETS.items():
        value = env.get(var)
        if value:
            cfg[key] = value

    # Resolve file paths relative to project root
    cfg["db_path"] = str(PROJECT_ROOT / cfg.get("db_path", "data/dailybrief.db"))
    cfg["log_path"] = str(PROJECT_ROOT / cfg.get("log_path", "data/pipeline.log"))

    # Defaults
    cfg.setdefault("anthropic_api_key", "")
    cfg.setdefault("brave_api_key", "")
    cfg.setdefault("tavily_api_key", "")
    cfg.setdefault("model", "claude-sonnet-4-5-20250929")
    cfg.setdefault("report_model", "claude-opus-4-1-20250805")
    cfg.setdefault("fallback_model", "claude-3-5-haiku-20241022")
    cfg.setdefault("default_domain", "fintech")
    cfg.setdefault("dedup_threshold", 80)
    cfg.setdefault("feed_timeout", 15)
    cfg.setdefault("max_items_per_feed", 10)
    cfg.setdefault("max_search_results", 5)
    cfg.setdefault("job_timeout_seconds", 300)
    cfg.setdefault("job_ttl_seconds", 3600)
    cfg.setdefault("usage_limit_per_day", 3)
    cfg.setdefault("domains", {})

    return cfg


def get_domain(cfg: dict, name: str | None = None) -> dict:
    """Return the profile for a product domain with per-domain defaults filled in.

    The returned dict carries its own ``name`` and an ``is_default`` flag so
    storage keys can be built without consulting the global config again.
    """
    name = name or cfg.get("default_domain", "fintech")
    domains = cfg.get("domains", {})
    if name not in domains:
        raise KeyError(f"Unknown domain '{name}' (configured: {', '.join(domains) or 'none'})")

    domain = dict(domains[name])
    domain["name"] = name
    domain["is_default"] = name == cfg.get("default_domain", "fintech")
    domain.setdefault("label", name.title())
    domain.setdefault("timezone", "UTC")
    domain.setdefault("expert_role", "industry analyst")
    domain.setdefault("feeds", [])
    domain.setdefault("keywords", [])
    domain.setdefault("search_keyword_limit", 10)
    domain.setdefault("key_terms", [])
    domain.setdefault("fallback_cluster", "Global Trends")
    domain.setdefault("frameworks", [])
    domain.setdefault("exclude_keywords", [])
    domain.setdefault("exclude_patterns", [])
    domain.setdefault("source_priority", {})
    domain.setdefault("max_age_hours", 24)
    domain.setdefault("max_issues", 5)
    domain.setdefault("dedup_window_days", 3)
    domain.setdefault("relevance_filter", False)
    domain.setdefault("always_relevant_feeds", [])
    return domain


def check_term_alignment(domain: dict) -> list[str]:
    """Return cluster key terms that no analysis framework trigger covers.

    Cluster labels and framework triggers are configured separately; a key
    term missing from every trigger list means its cluster is always analysed
    with the default framework.
    """
    triggers = {
        t.lower()
        for fw in domain.get("frameworks", [])
        for t in fw.get("triggers", [])
    }
    orphaned = [
        term for term in domain.get("key_terms", [])
        if not any(term.lower() in t or t in term.lower() for t in triggers)
    ]
    if orphaned:
        logger.warning(
            f"[Config] {domain.get('name', '?')}: key terms without a matching framework trigger: "
            + ", ".join(orphaned)
        )
    return orphaned


def domain_prefix(domain: dict):
    """Storage key prefix for a domain; the default domain has none."""
    return None if domain.get("is_default") else domain["name"]
