import logging
from typing import Optional

import redis

from dailybrief.storage.base import StorageError
from dailybrief.storage.redis_layout import KeyValueLayoutStorage

logger = logging.getLogger(__name__)


class RedisStorage(KeyValueLayoutStorage):
    """Self-hosted Redis reached through redis-py."""

    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None):
        if client is None:
            if not url:
                raise ValueError("RedisStorage needs a connection URL or a client")
            client = redis.Redis.from_url(url, decode_responses=True)
        self.client = client

    def _command(self, *args):
        try:
            return self.client.execute_command(*args)
        except redis.RedisError as e:
            raise StorageError(f"Redis {args[0]} failed: {e}") from e

    def _transaction(self, commands: list[list]) -> list:
        pipe = self.client.pipeline(transaction=True)
        for cmd in commands:
            pipe.execute_command(*cmd)
        try:
            return pipe.execute()
        except redis.RedisError as e:
            raise StorageError(f"Redis transaction failed: {e}") from e

    def close(self):
        self.client.close()
