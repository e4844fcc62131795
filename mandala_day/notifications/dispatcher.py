"""Notification dispatcher contract and an in-process implementation.

The dispatcher is the platform collaborator that fires a reminder at a future
instant. Implementations raise DispatcherError for any scheduling or
cancellation failure.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from loguru import logger

from mandala_day.core.clock import Clock
from mandala_day.core.errors import DispatcherError


@dataclass(frozen=True)
class Reminder:
    """A reminder to fire for one instance.

    Attributes:
        instance_id: Instance the reminder belongs to
        template_id: Template of that instance
        fire_at: Instant to fire at (aware)
        title: Notification title (template title)
        body: Notification body (template short prompt)
    """

    instance_id: str
    template_id: str
    fire_at: datetime
    title: str
    body: str


class NotificationDispatcher(Protocol):
    """Platform reminder scheduler."""

    async def schedule(self, reminder: Reminder) -> str: ...

    async def cancel(self, token: str) -> None: ...

    async def cancel_all(self) -> None: ...


DeliveryCallback = Callable[[Reminder], Awaitable[None] | None]


def log_delivery(reminder: Reminder) -> None:
    logger.info(f"🔔 {reminder.title}: {reminder.body} (instance_id={reminder.instance_id})")


class AsyncioDispatcher:
    """Fires reminders on the running event loop.

    Each reminder fires exactly once at or after ``fire_at`` while the process
    is alive. Nothing survives a restart; the planner re-submits the plan on
    the next trigger after start-up.
    """

    def __init__(self, clock: Clock, deliver: DeliveryCallback = log_delivery):
        self._clock = clock
        self._deliver = deliver
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._handles)

    async def schedule(self, reminder: Reminder) -> str:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise DispatcherError("AsyncioDispatcher needs a running event loop") from e

        token = f"{reminder.instance_id}_{uuid.uuid4().hex[:8]}"
        delay = max(0.0, (reminder.fire_at - self._clock.now()).total_seconds())
        self._handles[token] = loop.call_later(delay, self._fire, token, reminder)
        logger.debug(f"[DISPATCHER] Scheduled {reminder.instance_id} in {delay:.0f}s token={token}")
        return token

    def _fire(self, token: str, reminder: Reminder) -> None:
        if self._handles.pop(token, None) is None:
            return
        try:
            result = self._deliver(reminder)
        except Exception as e:
            logger.error(f"[DISPATCHER] Delivery failed for {reminder.instance_id}: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def cancel(self, token: str) -> None:
        handle = self._handles.pop(token, None)
        if handle is not None:
            handle.cancel()

    async def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        cancelled = len(self._handles)
        self._handles.clear()
        if cancelled:
            logger.debug(f"[DISPATCHER] Cancelled {cancelled} pending reminder(s)")
