"""Root conftest for all tests.

This file makes shared fixtures available across all test modules: a
manually driven clock, an in-memory key-value store, a recording
notification dispatcher and an orchestrator wired to all three.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

import pytest
import pytest_asyncio

from mandala_day.config.settings import Settings
from mandala_day.core.clock import ManualClock
from mandala_day.core.errors import DispatcherError, PersistenceError
from mandala_day.notifications.dispatcher import Reminder
from mandala_day.orchestrator.session_orchestrator import SessionOrchestrator
from mandala_day.sessions.types import DailySessionInstance, SessionStatus, make_instance_id
from mandala_day.storage.memory_store import InMemoryStore

# Monday; every default session (07:00 onwards) is still ahead
TEST_DAY = "2026-03-02"
TEST_START = datetime(2026, 3, 2, 6, 0, tzinfo=UTC)


class RecordingDispatcher:
    """Dispatcher double that records every call.

    Set ``fail`` to make schedule/cancel_all raise DispatcherError.
    """

    def __init__(self):
        self.scheduled: list[Reminder] = []
        self.active: dict[str, Reminder] = {}
        self.cancel_all_calls = 0
        self.fail = False
        self._counter = 0

    async def schedule(self, reminder: Reminder) -> str:
        await asyncio.sleep(0)
        if self.fail:
            raise DispatcherError("dispatcher unavailable")
        self._counter += 1
        token = f"token-{self._counter}"
        self.scheduled.append(reminder)
        self.active[token] = reminder
        return token

    async def cancel(self, token: str) -> None:
        await asyncio.sleep(0)
        self.active.pop(token, None)

    async def cancel_all(self) -> None:
        await asyncio.sleep(0)
        if self.fail:
            raise DispatcherError("dispatcher unavailable")
        self.cancel_all_calls += 1
        self.active.clear()

    @property
    def active_instance_ids(self) -> set[str]:
        return {reminder.instance_id for reminder in self.active.values()}


class FlakyStore(InMemoryStore):
    """In-memory store whose writes (or reads) can be made to fail."""

    def __init__(self, initial: dict[str, str] | None = None):
        super().__init__(initial)
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise PersistenceError(key, "get")
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistenceError(key, "set")
        await super().set(key, value)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(TEST_START)


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a short plan debounce so planning tests stay fast."""
    return Settings(
        STORAGE_BACKEND="memory",
        MANDALA_TIMEZONE="UTC",
        PLAN_DEBOUNCE_MS=10,
        MAX_SNOOZE_COUNT=3,
        RETENTION_DAYS=30,
        EVENT_LOG_CAP=1000,
    )


@pytest_asyncio.fixture
async def orchestrator(store, dispatcher, clock, test_settings):
    """Orchestrator over the in-memory store. Call ``await orchestrator.initialize()`` first.

    Closed on teardown so no debounced planning pass outlives the test.
    """
    orchestrator = SessionOrchestrator(store, dispatcher, clock, test_settings)
    yield orchestrator
    await orchestrator.close()


@pytest.fixture
def make_instance() -> Callable[..., DailySessionInstance]:
    """Factory for DailySessionInstance records on TEST_DAY."""

    def factory(
        template_id: str,
        scheduled_at: datetime,
        status: SessionStatus = SessionStatus.UPCOMING,
        day: str = TEST_DAY,
        **fields,
    ) -> DailySessionInstance:
        return DailySessionInstance(
            id=make_instance_id(day, template_id),
            date=day,
            template_id=template_id,
            scheduled_at=scheduled_at,
            status=status,
            **fields,
        )

    return factory
