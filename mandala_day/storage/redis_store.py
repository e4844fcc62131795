"""Redis-backed key-value store.

Each persisted record is a plain Redis string. Records never expire; the
day-level retention is enforced by the writers, not by Redis TTLs.
"""

from __future__ import annotations

import redis
import redis.asyncio as aioredis
from loguru import logger

from mandala_day.core.errors import PersistenceError


class RedisKeyValueStore:
    """Key-value store on top of ``redis.asyncio``."""

    def __init__(self, redis_url: str | None = None, client: aioredis.Redis | None = None):
        if client is None:
            if redis_url is None:
                raise ValueError("RedisKeyValueStore needs a redis_url or a client")
            client = aioredis.from_url(redis_url, decode_responses=True)
        self._client = client

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis GET failed for key={key}: {e}")
            raise PersistenceError(key, "get", e) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value)
        except redis.RedisError as e:
            logger.warning(f"Redis SET failed for key={key}: {e}")
            raise PersistenceError(key, "set", e) from e

    async def remove(self, key: str) -> None:
        await self.remove_many([key])

    async def remove_many(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*keys)
        except redis.RedisError as e:
            logger.warning(f"Redis DEL failed for keys={keys}: {e}")
            raise PersistenceError(",".join(keys), "remove", e) from e

    async def close(self) -> None:
        await self._client.aclose()
