"""Process-local key-value store."""

from __future__ import annotations

import asyncio


class InMemoryStore:
    """Dict-backed store. State lives only as long as the process.

    Each call yields to the event loop once so callers observe the same
    interleaving points they would with an I/O-backed store.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(0)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        self._data[key] = value

    async def remove(self, key: str) -> None:
        await asyncio.sleep(0)
        self._data.pop(key, None)

    async def remove_many(self, keys: list[str]) -> None:
        await asyncio.sleep(0)
        for key in keys:
            self._data.pop(key, None)

    async def close(self) -> None:
        return None

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents, for inspection."""
        return dict(self._data)
