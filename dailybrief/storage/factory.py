"""Resolve which storage backend to use, once, at process start."""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from dailybrief.storage.base import StorageAdapter

logger = logging.getLogger(__name__)


class Backend(Enum):
    LOCAL = "local"
    IN_MEMORY = "in_memory"
    REDIS = "redis"
    REST_KV = "rest_kv"


@dataclass(frozen=True)
class BackendSpec:
    backend: Backend
    options: dict = field(default_factory=dict)


def _is_deployed(env: Mapping[str, str]) -> bool:
    return bool(env.get("VERCEL")) or env.get("APP_ENV") == "production" or env.get("NODE_ENV") == "production"


def select_backend(env: Optional[Mapping[str, str]] = None, db_path: str = "data/dailybrief.db") -> BackendSpec:
    """Pick a backend from the environment.

    Precedence: managed REST key/value credentials, then a Redis URL, then
    the in-memory fallback on a deployment with nothing configured, and
    finally local SQLite.
    """
    env = os.environ if env is None else env
    rest_url, rest_token = env.get("KV_REST_API_URL"), env.get("KV_REST_API_TOKEN")
    if rest_url and rest_token:
        return BackendSpec(Backend.REST_KV, {"url": rest_url, "token": rest_token})

    redis_url = env.get("KV_URL") or env.get("REDIS_URL")
    if redis_url:
        return BackendSpec(Backend.REDIS, {"url": redis_url})

    if _is_deployed(env):
        return BackendSpec(Backend.IN_MEMORY)

    return BackendSpec(Backend.LOCAL, {"db_path": db_path})


def create_storage(spec: BackendSpec) -> StorageAdapter:
    if spec.backend is Backend.REST_KV:
        from dailybrief.storage.rest_kv import RestKVStorage
        return RestKVStorage(spec.options["url"], spec.options["token"])
    if spec.backend is Backend.REDIS:
        from dailybrief.storage.redis_store import RedisStorage
        return RedisStorage(spec.options["url"])
    if spec.backend is Backend.IN_MEMORY:
        from dailybrief.storage.memory import MemoryStorage
        return MemoryStorage()
    from dailybrief.storage.database import SQLiteStorage
    return SQLiteStorage(spec.options["db_path"])


def open_storage(cfg: dict, env: Optional[Mapping[str, str]] = None) -> StorageAdapter:
    """Build the storage adapter the rest of the process shares."""
    spec = select_backend(env, db_path=cfg.get("db_path", "data/dailybrief.db"))
    if spec.backend is Backend.IN_MEMORY:
        logger.warning("[Storage] Deployment has no store configured; falling back to memory")
    logger.info(f"[Storage] Backend: {spec.backend.value}")
    return create_storage(spec)
