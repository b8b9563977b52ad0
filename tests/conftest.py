import json

import fakeredis
import httpx
import pytest
import redis

from dailybrief.storage.database import SQLiteStorage
from dailybrief.storage.memory import MemoryStorage
from dailybrief.storage.redis_store import RedisStorage
from dailybrief.storage.rest_kv import RestKVStorage


class FakeClock:
    def __init__(self, start=1_760_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def rest_transport(server):
    """httpx transport that executes REST key/value commands on a fakeredis server."""
    backend = fakeredis.FakeRedis(server=server, decode_responses=True)

    def run(cmd):
        try:
            return {"result": backend.execute_command(*cmd)}
        except redis.ResponseError as e:
            return {"error": str(e)}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer test-token"
        payload = json.loads(request.content)
        if request.url.path.endswith("/multi-exec"):
            return httpx.Response(200, json=[run(cmd) for cmd in payload])
        return httpx.Response(200, json=run(payload))

    return httpx.MockTransport(handler)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture(params=["sqlite", "memory", "redis", "rest_kv"])
def storage(request, tmp_path, clock, redis_server):
    if request.param == "sqlite":
        store = SQLiteStorage(str(tmp_path / "briefs.db"), clock=clock)
    elif request.param == "memory":
        store = MemoryStorage(clock=clock)
    elif request.param == "redis":
        store = RedisStorage(client=fakeredis.FakeRedis(server=redis_server, decode_responses=True))
    else:
        store = RestKVStorage("https://kv.example.com", "test-token", transport=rest_transport(redis_server))
    yield store
    store.close()


@pytest.fixture
def memory_storage(clock):
    return MemoryStorage(clock=clock)


@pytest.fixture
def cfg():
    return {
        "anthropic_api_key": "test-key",
        "model": "test-model",
        "report_model": "test-report-model",
        "fallback_model": "test-fallback-model",
        "default_domain": "fintech",
        "dedup_threshold": 80,
        "feed_timeout": 5,
        "max_items_per_feed": 10,
        "max_search_results": 5,
        "usage_limit_per_day": 3,
        "job_timeout_seconds": 300,
        "job_ttl_seconds": 3600,
        "domains": {
            "fintech": {
                "label": "FinTech Daily Brief",
                "timezone": "America/New_York",
                "fallback_cluster": "Global FinTech Trends",
                "key_terms": ["Payments", "Crypto", "Stripe", "Regulation"],
                "keywords": ["Stripe", "Fintech"],
                "frameworks": [
                    {"name": "Embedded Finance & BaaS", "triggers": ["baas", "embedded finance", "stripe"],
                     "insight_template": "Platforms internalizing finance"},
                    {"name": "Decentralization & Digital Assets", "triggers": ["crypto", "stablecoin"],
                     "insight_template": "Digital assets"},
                    {"name": "Borderless Payment & Remittance Networks", "triggers": ["payments", "cross-border"],
                     "insight_template": "Real-time payments"},
                    {"name": "Regulatory & Compliance Arbitrage", "triggers": ["regulation", "sec"],
                     "insight_template": "Regulation"},
                ],
                "max_issues": 5,
                "dedup_window_days": 3,
            },
            "battery": {
                "label": "Battery Daily Brief",
                "timezone": "Asia/Seoul",
                "fallback_cluster": "Global Battery Trends",
                "key_terms": ["CATL", "Lithium"],
                "keywords": ["CATL", "battery"],
                "frameworks": [
                    {"name": "Value Chain Dynamics", "triggers": ["lithium"], "insight_template": "Value chain"},
                ],
                "relevance_filter": True,
                "always_relevant_feeds": ["Electrive"],
            },
        },
    }
