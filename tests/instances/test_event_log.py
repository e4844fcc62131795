"""Tests for the event log and the extra practice ledger."""

import json
import re

import pytest

from mandala_day.instances.event_log import EventLog
from mandala_day.instances.extra_practice import ExtraPracticeLedger
from mandala_day.sessions.types import EventType
from mandala_day.storage.base import StorageKeys


class TestEventLog:
    """Test appending, capping and reading events."""

    @pytest.mark.asyncio
    async def test_append_persists_entry(self, store, clock):
        event_log = EventLog(store, clock)

        entry = await event_log.append(EventType.SNOOZE, "2026-03-02_session1_waking_view", {"minutes": 10})

        assert entry is not None
        assert re.fullmatch(r"\d+_[0-9a-f]{9}", entry.id)
        assert entry.timestamp == clock.now()
        payload = json.loads(store.snapshot()[StorageKeys.EVENT_LOG])
        assert payload == [
            {
                "id": entry.id,
                "timestamp": payload[0]["timestamp"],
                "eventType": "SNOOZE",
                "instanceId": "2026-03-02_session1_waking_view",
                "metadata": {"minutes": 10},
            }
        ]

    @pytest.mark.asyncio
    async def test_oldest_entries_trimmed_past_cap(self, store, clock):
        event_log = EventLog(store, clock, cap=3)

        for index in range(5):
            await event_log.append(EventType.START, f"instance-{index}")

        entries = await event_log.recent()
        assert [entry.instance_id for entry in entries] == ["instance-2", "instance-3", "instance-4"]

    @pytest.mark.asyncio
    async def test_recent_limit(self, store, clock):
        event_log = EventLog(store, clock)
        for index in range(4):
            await event_log.append(EventType.COMPLETE, f"instance-{index}")

        entries = await event_log.recent(limit=2)

        assert [entry.instance_id for entry in entries] == ["instance-2", "instance-3"]
        assert await event_log.recent(limit=0) == []

    @pytest.mark.asyncio
    async def test_append_failure_is_absorbed(self, store, clock):
        event_log = EventLog(store, clock)
        store.fail_writes = True

        assert await event_log.append(EventType.SKIP, "instance-1") is None

        store.fail_writes = False
        assert await event_log.recent() == []


class TestExtraPracticeLedger:
    """Test extra practice minutes."""

    @pytest.mark.asyncio
    async def test_minutes_accumulate_per_day(self, store, clock):
        ledger = ExtraPracticeLedger(store, clock)

        assert await ledger.add_minutes("2026-03-02", 15) == 15
        assert await ledger.add_minutes("2026-03-02", 5) == 20
        assert await ledger.add_minutes("2026-03-01", 10) == 10

        assert await ledger.get_minutes("2026-03-02") == 20
        assert await ledger.get_minutes("2026-02-27") == 0
        assert await ledger.all_minutes() == {"2026-03-02": 20, "2026-03-01": 10}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("minutes", [0, -5])
    async def test_non_positive_minutes_rejected(self, store, clock, minutes):
        ledger = ExtraPracticeLedger(store, clock)

        assert await ledger.add_minutes("2026-03-02", minutes) is None
        assert await ledger.all_minutes() == {}

    @pytest.mark.asyncio
    async def test_old_days_pruned(self, store, clock):
        await store.set(StorageKeys.EXTRA_PRACTICE_MINUTES, json.dumps({"2026-01-01": 30, "2026-02-20": 12}))
        ledger = ExtraPracticeLedger(store, clock, retention_days=30)

        await ledger.add_minutes("2026-03-02", 5)

        assert await ledger.all_minutes() == {"2026-02-20": 12, "2026-03-02": 5}
