"""Session orchestrator.

Public surface consumed by the UI layer: start / complete / skip / snooze,
next_due, refresh_today and get_today_instances, plus the settings, history
and extra-practice actions around them.

Every operation is asynchronous with respect to persistence but the
in-memory view of today is updated before the call returns, so a caller that
reads state right after ``await orchestrator.start(id)`` sees the new status.

Error policy:
- An unknown instance id is a silent no-op (returns None). It usually means
  the caller's view is stale relative to a day rollover.
- Persistence and dispatcher failures are logged and absorbed; in-memory
  state stays consistent with the last successful write.
- InvariantViolationError (a day written without the generator) propagates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from mandala_day.config.settings import Settings, settings
from mandala_day.core.clock import Clock, format_day, local_today
from mandala_day.core.errors import InstanceNotFoundError, PersistenceError
from mandala_day.engine.status_engine import StatusEngine
from mandala_day.instances.event_log import EventLog
from mandala_day.instances.extra_practice import ExtraPracticeLedger
from mandala_day.instances.store import InstanceStore
from mandala_day.notifications.dispatcher import NotificationDispatcher
from mandala_day.notifications.planner import NotificationPlanner
from mandala_day.orchestrator.history import (
    DEFAULT_HISTORY_DAYS,
    DaySummary,
    history_days,
    is_mandala_complete,
    summarize_day,
)
from mandala_day.orchestrator.selection import select_next_due
from mandala_day.schedule.generator import generate_daily_instances, reconcile_day, resolve_schedule_for_date
from mandala_day.schedule.repository import ScheduleRepository, default_app_settings, default_user_schedule
from mandala_day.sessions.types import (
    AppSettings,
    DailySessionInstance,
    EventLogEntry,
    EventType,
    SessionStatus,
    UserSchedule,
)
from mandala_day.storage.base import KeyValueStore, StorageKeys

_WEEKEND_FIELDS = {"weekend_schedule_enabled", "weekendScheduleEnabled", "weekend_schedule", "weekendSchedule"}

InstanceUpdate = Callable[[DailySessionInstance, datetime], DailySessionInstance | None]


class SessionOrchestrator:
    """Owns today's instances and mediates every change to them."""

    def __init__(
        self,
        store: KeyValueStore,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        config: Settings | None = None,
    ):
        config = config or settings
        self._store = store
        self._clock = clock
        self._max_snooze_count = config.max_snooze_count
        self._missed_surface_minutes = config.missed_surface_minutes

        self._schedule_repository = ScheduleRepository(store)
        self._instance_store = InstanceStore(store, clock, retention_days=config.retention_days)
        self._event_log = EventLog(store, clock, cap=config.event_log_cap)
        self._extra_practice = ExtraPracticeLedger(store, clock, retention_days=config.retention_days)
        self._status_engine = StatusEngine(self._instance_store, self._event_log)
        self._planner = NotificationPlanner(dispatcher, clock, debounce_seconds=config.plan_debounce_ms / 1000)

        # Serializes tick and user actions on the in-memory day
        self._lock = asyncio.Lock()
        self._schedule: UserSchedule = default_user_schedule()
        self._app_settings: AppSettings = default_app_settings()
        self._current_day: str = format_day(local_today(clock))
        self._today: list[DailySessionInstance] = []

    @property
    def planner(self) -> NotificationPlanner:
        return self._planner

    @property
    def instance_store(self) -> InstanceStore:
        return self._instance_store

    @property
    def current_day(self) -> str:
        return self._current_day

    @property
    def user_schedule(self) -> UserSchedule:
        return self._schedule

    @property
    def app_settings(self) -> AppSettings:
        return self._app_settings

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> list[DailySessionInstance]:
        """Load schedule and settings, then load or generate today."""
        self._schedule, self._app_settings = await asyncio.gather(
            self._schedule_repository.get_user_schedule(),
            self._schedule_repository.get_app_settings(),
        )
        logger.info(
            f"Orchestrator initialized: day={format_day(local_today(self._clock))} "
            f"notifications_enabled={self._app_settings.notifications_enabled}"
        )
        return await self.refresh_today()

    async def refresh_today(self) -> list[DailySessionInstance]:
        """Reload today from the store (generating it if needed) and recompute statuses."""
        async with self._lock:
            self._current_day = format_day(local_today(self._clock))
            await self._load_day(self._current_day)
            await self._apply_statuses()
        self._request_plan()
        return self.get_today_instances()

    async def tick(self) -> list[DailySessionInstance]:
        """Periodic and eager re-evaluation.

        Detects a calendar day change (loading the new day), then runs the
        status engine over today's instances.
        """
        async with self._lock:
            today = format_day(local_today(self._clock))
            reloaded = False
            if today != self._current_day:
                logger.info(f"Day changed from {self._current_day} to {today}")
                self._current_day = today
                await self._load_day(today)
                reloaded = True
            elif not self._today:
                await self._load_day(today)
                reloaded = bool(self._today)
            changed = await self._apply_statuses()

        if reloaded or changed:
            self._request_plan()
        return self.get_today_instances()

    async def resume(self) -> list[DailySessionInstance]:
        """Host returned from background: evaluate eagerly."""
        return await self.tick()

    async def close(self) -> None:
        await self._planner.close()

    async def _load_day(self, day: str) -> None:
        effective = resolve_schedule_for_date(day, self._schedule, self._app_settings)
        try:
            self._today = await self._instance_store.get_or_generate_day(
                day,
                lambda: generate_daily_instances(day, effective, self._clock.tz),
            )
        except PersistenceError as e:
            logger.error(f"Error loading instances for {day}: {e}")
            if not self._today or self._today[0].date != day:
                self._today = []

    async def _apply_statuses(self) -> bool:
        if not self._today:
            return False
        evaluation = await self._status_engine.apply(
            self._today,
            self._clock.now(),
            self._schedule.grace_window_min,
        )
        self._today = evaluation.instances
        return bool(evaluation.changed)

    def _request_plan(self) -> None:
        if not self._app_settings.notifications_enabled:
            return
        self._planner.request_plan(self._today, self._schedule)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_today_instances(self) -> list[DailySessionInstance]:
        return list(self._today)

    def get_instance(self, instance_id: str) -> DailySessionInstance | None:
        return next((instance for instance in self._today if instance.id == instance_id), None)

    def next_due(self) -> DailySessionInstance | None:
        """Instance the primary call-to-action should point at. No side effects."""
        return select_next_due(self._today, self._clock.now(), self._missed_surface_minutes)

    def is_mandala_complete(self) -> bool:
        return is_mandala_complete(self._today)

    async def get_history(self, days: int = DEFAULT_HISTORY_DAYS) -> list[DaySummary]:
        """Summaries for the last ``days`` days, newest first."""
        extra = await self._extra_practice.all_minutes()
        summaries: list[DaySummary] = []
        for day in history_days(local_today(self._clock), days):
            try:
                instances = await self._instance_store.get_day(day)
            except PersistenceError as e:
                logger.error(f"Error loading history for {day}: {e}")
                instances = None
            summaries.append(summarize_day(day, instances, extra.get(day, 0)))
        return summaries

    async def get_recent_events(self, limit: int = 100) -> list[EventLogEntry]:
        return await self._event_log.recent(limit)

    async def get_extra_practice_minutes(self, day: str | None = None) -> int:
        return await self._extra_practice.get_minutes(day or self._current_day)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def start(self, instance_id: str) -> DailySessionInstance | None:
        """Mark an instance as in progress.

        A COMPLETED instance is returned unchanged so it can be replayed
        without touching its state.
        """

        def update(instance: DailySessionInstance, now: datetime) -> DailySessionInstance | None:
            if instance.status == SessionStatus.COMPLETED:
                return None
            return instance.model_copy(update={"status": SessionStatus.DUE, "started_at": now})

        return await self._mutate(instance_id, update, EventType.START, unchanged_result=True)

    async def complete(self, instance_id: str) -> DailySessionInstance | None:
        def update(instance: DailySessionInstance, now: datetime) -> DailySessionInstance:
            return instance.model_copy(update={"status": SessionStatus.COMPLETED, "ended_at": now})

        return await self._mutate(instance_id, update, EventType.COMPLETE)

    async def skip(self, instance_id: str) -> DailySessionInstance | None:
        def update(instance: DailySessionInstance, now: datetime) -> DailySessionInstance:
            return instance.model_copy(update={"status": SessionStatus.SKIPPED})

        return await self._mutate(instance_id, update, EventType.SKIP)

    async def snooze(self, instance_id: str, minutes: int) -> DailySessionInstance | None:
        """Push an instance ``minutes`` into the future and restart its lifecycle.

        Returns:
            The snoozed instance, or None when the id is unknown, minutes is
            not positive or the snooze cap has been reached
        """
        if minutes <= 0:
            logger.warning(f"Rejected snooze of {instance_id}: minutes must be positive (got {minutes})")
            return None

        def update(instance: DailySessionInstance, now: datetime) -> DailySessionInstance | None:
            if instance.snooze_count >= self._max_snooze_count:
                logger.warning(
                    f"Rejected snooze of {instance_id}: snooze_count={instance.snooze_count} "
                    f"reached max_snooze_count={self._max_snooze_count}"
                )
                return None
            return instance.model_copy(
                update={
                    "scheduled_at": now + timedelta(minutes=minutes),
                    "status": SessionStatus.UPCOMING,
                    "snooze_count": instance.snooze_count + 1,
                }
            )

        return await self._mutate(instance_id, update, EventType.SNOOZE, metadata={"minutes": minutes})

    async def _mutate(
        self,
        instance_id: str,
        update: InstanceUpdate,
        event_type: EventType,
        metadata: dict[str, Any] | None = None,
        unchanged_result: bool = False,
    ) -> DailySessionInstance | None:
        async with self._lock:
            instance = self.get_instance(instance_id)
            if instance is None:
                logger.debug(f"{event_type} ignored: instance {instance_id} not in today's set")
                return None

            updated = update(instance, self._clock.now())
            if updated is None:
                return instance if unchanged_result else None

            try:
                day = await self._instance_store.upsert_instance(updated)
            except (PersistenceError, InstanceNotFoundError) as e:
                logger.error(f"Error persisting {event_type} for {instance_id}: {e}")
                return None

            if updated.date == self._current_day:
                self._today = day
            await self._event_log.append(event_type, instance_id, metadata)

        logger.info(f"{event_type} instance_id={instance_id} status={updated.status.value}")
        self._request_plan()
        return updated

    # ------------------------------------------------------------------
    # Settings and extras
    # ------------------------------------------------------------------

    async def update_user_schedule(self, **changes: Any) -> UserSchedule:
        """Merge schedule changes, persist them and rebuild today.

        Raises:
            pydantic.ValidationError: If the changes produce an invalid schedule
        """
        async with self._lock:
            self._schedule = await self._schedule_repository.update_user_schedule(**changes)
            await self._rebuild_today()
            await self._apply_statuses()
        self._request_plan()
        return self._schedule

    async def update_app_settings(self, **changes: Any) -> AppSettings:
        """Merge settings changes and persist them.

        Turning notifications off cancels every outstanding reminder; turning
        them on (or changing anything else) re-plans.
        """
        async with self._lock:
            self._app_settings = await self._schedule_repository.update_app_settings(**changes)
            if _WEEKEND_FIELDS.intersection(changes):
                await self._rebuild_today()
                await self._apply_statuses()

        if self._app_settings.notifications_enabled:
            self._request_plan()
        else:
            await self._planner.clear()
        return self._app_settings

    async def _rebuild_today(self) -> None:
        day = format_day(local_today(self._clock))
        self._current_day = day
        effective = resolve_schedule_for_date(day, self._schedule, self._app_settings)
        fresh = generate_daily_instances(day, effective, self._clock.tz)
        try:
            self._today = await self._instance_store.regenerate_day(day, lambda existing: reconcile_day(existing, fresh))
        except PersistenceError as e:
            logger.error(f"Error rebuilding instances for {day}: {e}")

    async def record_extra_practice(self, minutes: int, day: str | None = None) -> int | None:
        """Add ad-hoc practice minutes (defaults to today)."""
        return await self._extra_practice.add_minutes(day or self._current_day, minutes)

    async def reset(self) -> list[DailySessionInstance]:
        """Remove all persisted state and start today from scratch."""
        await self._planner.clear()
        try:
            await self._store.remove_many([key.value for key in StorageKeys])
        except PersistenceError as e:
            logger.error(f"Error clearing data: {e}")
        self._today = []
        logger.warning("All persisted data cleared")
        return await self.initialize()
