"""Build the configured key-value store."""

from __future__ import annotations

from loguru import logger

from mandala_day.config.settings import Settings
from mandala_day.storage.base import KeyValueStore
from mandala_day.storage.memory_store import InMemoryStore


class PrefixedStore:
    """Namespaces every key of an underlying store with a fixed prefix."""

    def __init__(self, inner: KeyValueStore, prefix: str):
        self._inner = inner
        self._prefix = prefix

    async def get(self, key: str) -> str | None:
        return await self._inner.get(self._prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self._inner.set(self._prefix + key, value)

    async def remove(self, key: str) -> None:
        await self._inner.remove(self._prefix + key)

    async def remove_many(self, keys: list[str]) -> None:
        await self._inner.remove_many([self._prefix + key for key in keys])

    async def close(self) -> None:
        await self._inner.close()


def build_store(config: Settings) -> KeyValueStore:
    """Create the store selected by STORAGE_BACKEND.

    Backend modules are imported lazily so that a memory-only deployment does
    not need a reachable database or Redis server.
    """
    store: KeyValueStore
    if config.storage_backend == "memory":
        logger.warning("Using in-memory store: state will be lost when the process exits")
        store = InMemoryStore()
    elif config.storage_backend == "redis":
        from mandala_day.storage.redis_store import RedisKeyValueStore

        logger.info(f"Using Redis store: {config.redis_url}")
        store = RedisKeyValueStore(redis_url=config.redis_url)
    else:
        from mandala_day.storage.sql_store import SqlKeyValueStore

        logger.info(f"Using SQL store: {config.database_url}")
        store = SqlKeyValueStore(database_url=config.database_url)

    if config.storage_key_prefix:
        return PrefixedStore(store, config.storage_key_prefix)
    return store
