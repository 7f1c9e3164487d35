"""Key-value backend: the whole user map as one JSON blob in redis."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from httpauth.backends.base import SnapshotUserStore, UserRecord
from httpauth.errors import StoreError

logger = logging.getLogger("httpauth.backends.keyvalue")

USERDATA_KEY = "httpauth::userdata"


class KeyValueUserStore(SnapshotUserStore):
    """Users held in memory, written to a single redis key on every change.

    Pass ``url`` to connect, or ``client`` to reuse an existing
    ``redis.asyncio`` client (the store then leaves it open on close).
    """

    def __init__(self, url: Optional[str] = None, client: Any = None, key: str = USERDATA_KEY):
        super().__init__()
        if client is None and not url:
            raise ValueError("Either a redis url or a client is required")
        self.url = url
        self.key = key
        self._client = client
        self._owns_client = client is None

    async def _load(self) -> dict[str, UserRecord]:
        if self._client is None:
            self._client = aioredis.Redis.from_url(self.url)
        try:
            raw = await self._client.get(self.key)
        except RedisError as e:
            raise StoreError(f"keyvaluebackend: {e}") from e
        if not raw:
            return {}
        try:
            data = json.loads(raw)
            users = {name: UserRecord.from_dict(item) for name, item in data.items()}
        except (ValueError, KeyError, AttributeError, TypeError) as e:
            raise StoreError(f"keyvaluebackend: unreadable user data under {self.key}: {e}") from e
        logger.info("Loaded %d user(s) from %s", len(users), self.key)
        return users

    async def _flush(self, users: dict[str, UserRecord]) -> None:
        data = json.dumps({name: user.to_dict() for name, user in users.items()})
        try:
            await self._client.set(self.key, data)
        except RedisError as e:
            raise StoreError(f"keyvaluebackend: save: {e}") from e

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._loaded = False
