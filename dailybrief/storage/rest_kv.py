"""Managed key/value service reached over its REST API.

Each command is POSTed as a JSON array (``["SET", "k", "v"]``) with a bearer
token; the reply is ``{"result": ...}`` or ``{"error": "..."}``. Atomic
batches go to ``/multi-exec`` and come back as a list of such replies.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from dailybrief.storage.base import StorageError
from dailybrief.storage.redis_layout import KeyValueLayoutStorage

logger = logging.getLogger(__name__)


class RestKVStorage(KeyValueLayoutStorage):
    def __init__(
        self,
        url: str,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.client = httpx.Client(
            base_url=url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def _post(self, path: str, payload):
        try:
            resp = self.client.post(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"REST key/value request failed: {e}") from e
        return resp.json()

    @staticmethod
    def _unwrap(reply: dict):
        if "error" in reply:
            raise StorageError(f"REST key/value command failed: {reply['error']}")
        return reply.get("result")

    def _command(self, *args):
        return self._unwrap(self._post("/", [str(a) for a in args]))

    def _transaction(self, commands: list[list]) -> list:
        replies = self._post("/multi-exec", [[str(a) for a in cmd] for cmd in commands])
        return [self._unwrap(r) for r in replies]

    def close(self):
        self.client.close()
