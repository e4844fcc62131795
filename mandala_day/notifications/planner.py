"""Notification planner.

Turns today's instances and the user's schedule into a minimal reminder plan
and submits it to the dispatcher:

1. Instances scheduled at or before now are dropped; so are COMPLETED and
   SKIPPED ones and templates the user has disabled.
2. Instances whose local time of day falls inside enabled quiet hours are
   dropped.
3. A content hash of the surviving (template id, scheduled_at) pairs plus the
   quiet-hours configuration is compared with the last successfully applied
   hash; an equal hash skips the whole pass.
4. Otherwise every previously dispatched reminder is cancelled and the new
   set submitted. The hash is recorded only once the dispatcher accepted the
   whole plan, so a failed pass is retried by the next trigger.
5. Triggers are debounced. Each pass takes a new plan version; a pass that
   has been superseded by a newer one aborts without recording its hash.

The planner only plans today. Its state (last hash, version, debounce task)
belongs to the instance and lives as long as the process.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from datetime import datetime, tzinfo
from enum import StrEnum

from loguru import logger

from mandala_day.core.clock import Clock
from mandala_day.core.errors import DispatcherError
from mandala_day.notifications.dispatcher import NotificationDispatcher, Reminder
from mandala_day.notifications.quiet_hours import is_in_quiet_hours
from mandala_day.sessions.templates import get_template_by_id
from mandala_day.sessions.types import DailySessionInstance, QuietHours, UserSchedule

DEFAULT_DEBOUNCE_SECONDS = 0.3


class PlanOutcome(StrEnum):
    """What a planning pass did."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    SUPERSEDED = "superseded"
    FAILED = "failed"


def build_plan(
    instances: list[DailySessionInstance],
    schedule: UserSchedule,
    now: datetime,
    tz: tzinfo,
) -> list[Reminder]:
    """Select the reminders to dispatch. Pure.

    Args:
        instances: Today's instances
        schedule: Current user schedule (quiet hours, enabled sessions)
        now: Current instant
        tz: Zone used for quiet-hours time of day

    Returns:
        Reminders ordered by fire time
    """
    reminders: list[Reminder] = []
    for instance in instances:
        if instance.scheduled_at <= now:
            continue
        if instance.status.is_terminal:
            continue
        if schedule.enabled_sessions.get(instance.template_id) is False:
            continue
        template = get_template_by_id(instance.template_id)
        if template is None:
            logger.warning(f"[NOTIFICATIONS] Unknown template {instance.template_id} for {instance.id}, no reminder")
            continue
        if is_in_quiet_hours(instance.scheduled_at, schedule.quiet_hours, tz):
            logger.debug(f"[NOTIFICATIONS] Reminder for {template.title} skipped - in quiet hours")
            continue
        reminders.append(
            Reminder(
                instance_id=instance.id,
                template_id=instance.template_id,
                fire_at=instance.scheduled_at,
                title=template.title,
                body=template.short_prompt,
            )
        )
    return sorted(reminders, key=lambda reminder: reminder.fire_at)


def plan_hash(reminders: list[Reminder], quiet_hours: QuietHours) -> str:
    """Content fingerprint of a plan.

    Only what changes the dispatched reminders goes in: the sorted
    (template id, fire instant) pairs and the quiet-hours configuration.
    """
    pairs = sorted(f"{reminder.template_id}:{reminder.fire_at.isoformat()}" for reminder in reminders)
    quiet = json.dumps(quiet_hours.to_json_dict(), sort_keys=True)
    payload = "|".join(pairs) + "::" + quiet
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class NotificationPlanner:
    """Debounced, versioned, hash-deduplicated reminder planning."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self._dispatcher = dispatcher
        self._clock = clock
        self._debounce_seconds = debounce_seconds
        self._version = 0
        self._last_applied_hash: str | None = None
        self._tokens: list[str] = []
        self._apply_lock = asyncio.Lock()
        self._debounce_timer: asyncio.TimerHandle | None = None
        self._passes: set[asyncio.Task] = set()
        self._pending: tuple[list[DailySessionInstance], UserSchedule] | None = None

    @property
    def version(self) -> int:
        return self._version

    @property
    def dispatched_tokens(self) -> list[str]:
        """Dispatcher tokens of the last applied plan."""
        return list(self._tokens)

    @property
    def last_applied_hash(self) -> str | None:
        return self._last_applied_hash

    def request_plan(self, instances: list[DailySessionInstance], schedule: UserSchedule) -> None:
        """Trigger a planning pass after the debounce period.

        Successive calls within the quiet period collapse into one pass that
        uses the inputs of the latest call. A pass that is already running is
        never cancelled; it is superseded through the plan version instead.
        Must be called from the event loop.
        """
        self._pending = (list(instances), schedule)
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_timer = loop.call_later(self._debounce_seconds, self._start_pass)

    def _start_pass(self) -> None:
        self._debounce_timer = None
        if self._pending is None:
            return
        instances, schedule = self._pending
        self._pending = None
        task = asyncio.create_task(self._run_pass(instances, schedule))
        self._passes.add(task)
        task.add_done_callback(self._passes.discard)

    async def _run_pass(self, instances: list[DailySessionInstance], schedule: UserSchedule) -> None:
        try:
            await self.plan_now(instances, schedule)
        except Exception as e:
            logger.error(f"[NOTIFICATIONS] Unexpected planning failure: {e}")

    async def wait_idle(self) -> None:
        """Wait until no debounced pass is pending or running."""
        while self._debounce_timer is not None or self._passes:
            if self._passes:
                await asyncio.wait(set(self._passes))
            else:
                await asyncio.sleep(self._debounce_seconds / 2)

    async def plan_now(self, instances: list[DailySessionInstance], schedule: UserSchedule) -> PlanOutcome:
        """Run one planning pass immediately (no debounce)."""
        self._version += 1
        version = self._version

        async with self._apply_lock:
            if version != self._version:
                logger.info(f"[NOTIFICATIONS v{version}] Outdated version, aborting (current: {self._version})")
                return PlanOutcome.SUPERSEDED

            reminders = build_plan(instances, schedule, self._clock.now(), self._clock.tz)
            digest = plan_hash(reminders, schedule.quiet_hours)
            if digest == self._last_applied_hash:
                logger.debug(f"[NOTIFICATIONS v{version}] Schedule unchanged, skipping re-schedule")
                return PlanOutcome.UNCHANGED

            try:
                await self._dispatcher.cancel_all()
                self._tokens = []
                for reminder in reminders:
                    self._tokens.append(await self._dispatcher.schedule(reminder))
            except DispatcherError as e:
                logger.error(f"[NOTIFICATIONS v{version}] Error scheduling: {e}")
                return PlanOutcome.FAILED

            if version != self._version:
                # The dispatcher now holds this pass's reminders, which match no recorded plan.
                self._last_applied_hash = None
                logger.info(f"[NOTIFICATIONS v{version}] Superseded while dispatching, hash not recorded")
                return PlanOutcome.SUPERSEDED

            self._last_applied_hash = digest
            logger.info(f"[NOTIFICATIONS v{version}] Scheduled {len(reminders)} reminder(s)")
            return PlanOutcome.APPLIED

    def _cancel_timer(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None
        self._pending = None

    async def clear(self) -> None:
        """Cancel every dispatched reminder and forget the applied plan.

        Used when notifications are turned off. A pending debounced pass is
        dropped and any in-flight pass is superseded.
        """
        self._cancel_timer()
        self._version += 1
        async with self._apply_lock:
            try:
                await self._dispatcher.cancel_all()
            except DispatcherError as e:
                logger.error(f"[NOTIFICATIONS] Error cancelling reminders: {e}")
                return
            self._tokens = []
            self._last_applied_hash = None
        logger.info("[NOTIFICATIONS] Cancelled all reminders")

    async def close(self) -> None:
        """Drop the pending pass and wait for running ones to finish."""
        self._cancel_timer()
        if self._passes:
            await asyncio.wait(set(self._passes))
