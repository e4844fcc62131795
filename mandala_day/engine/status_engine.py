"""Status engine.

Single source of truth for the clock-driven part of the session lifecycle:

    UPCOMING -> DUE -> MISSED

COMPLETED and SKIPPED are terminal and only reachable through user action;
the engine never enters or leaves them. Status is recomputed from the clock
on every tick:

- now < scheduled_at                            -> UPCOMING
- scheduled_at <= now < scheduled_at + grace    -> DUE
- now >= scheduled_at + grace                   -> MISSED

A MISS event is emitted exactly once, on the transition into MISSED.
Re-evaluating an instance whose computed status equals its stored status
produces no write and no event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from mandala_day.core.errors import InstanceNotFoundError, PersistenceError
from mandala_day.instances.event_log import EventLog
from mandala_day.instances.store import InstanceStore
from mandala_day.sessions.types import (
    DEFAULT_GRACE_WINDOW_MIN,
    DailySessionInstance,
    EventType,
    SessionStatus,
    sort_instances,
)


def compute_status(
    instance: DailySessionInstance,
    now: datetime,
    grace_window_min: int = DEFAULT_GRACE_WINDOW_MIN,
) -> SessionStatus:
    """Compute the status an instance should have at ``now``.

    Args:
        instance: Instance to evaluate
        now: Current instant (aware)
        grace_window_min: Minutes after scheduled_at the instance stays DUE

    Returns:
        The stored status for terminal instances, otherwise the clock-derived status
    """
    if instance.status.is_terminal:
        return instance.status

    grace_end = instance.scheduled_at + timedelta(minutes=grace_window_min)
    if now < instance.scheduled_at:
        return SessionStatus.UPCOMING
    if now < grace_end:
        return SessionStatus.DUE
    return SessionStatus.MISSED


@dataclass
class StatusEvaluation:
    """Result of evaluating a day's instances against the clock.

    Attributes:
        instances: Every instance with its recomputed status, canonical order
        changed: Only the instances whose status changed
        missed: Ids that transitioned into MISSED during this evaluation
    """

    instances: list[DailySessionInstance]
    changed: list[DailySessionInstance] = field(default_factory=list)
    missed: list[str] = field(default_factory=list)


def evaluate_statuses(
    instances: list[DailySessionInstance],
    now: datetime,
    grace_window_min: int = DEFAULT_GRACE_WINDOW_MIN,
) -> StatusEvaluation:
    """Recompute statuses for a set of instances. Pure."""
    evaluation = StatusEvaluation(instances=[])
    for instance in sort_instances(instances):
        new_status = compute_status(instance, now, grace_window_min)
        if new_status == instance.status:
            evaluation.instances.append(instance)
            continue

        updated = instance.model_copy(update={"status": new_status})
        evaluation.instances.append(updated)
        evaluation.changed.append(updated)
        if new_status == SessionStatus.MISSED:
            evaluation.missed.append(updated.id)
    return evaluation


class StatusEngine:
    """Applies clock-driven transitions to persisted instances."""

    def __init__(self, instance_store: InstanceStore, event_log: EventLog):
        self._instance_store = instance_store
        self._event_log = event_log

    async def apply(
        self,
        instances: list[DailySessionInstance],
        now: datetime,
        grace_window_min: int = DEFAULT_GRACE_WINDOW_MIN,
    ) -> StatusEvaluation:
        """Evaluate instances, persist the changed ones and log MISS transitions.

        Changed instances are written with a single upsert, which re-reads the
        persisted day inside the store lock. If the write fails the
        returned evaluation carries the original instances unchanged, so
        in-memory state matches the last successful write and the next tick
        recomputes the same transitions. MISS events are only logged once the
        transition is persisted, so a retry cannot log a duplicate MISS.

        Raises:
            InvariantViolationError: If the instances' day was never generated
        """
        evaluation = evaluate_statuses(instances, now, grace_window_min)
        if not evaluation.changed:
            return evaluation

        try:
            result = await self._instance_store.upsert_instances(evaluation.changed, replace_if=_is_clock_transition)
        except (PersistenceError, InstanceNotFoundError) as e:
            logger.error(f"[STATUS_ENGINE] Failed to persist {len(evaluation.changed)} status change(s): {e}")
            return StatusEvaluation(instances=sort_instances(instances))

        # A user action may have landed between evaluation and write; the persisted day wins.
        replaced = set(result.replaced_ids)
        applied = [instance for instance in evaluation.changed if instance.id in replaced]
        evaluation = StatusEvaluation(
            instances=result.instances,
            changed=applied,
            missed=[instance.id for instance in applied if instance.status == SessionStatus.MISSED],
        )

        for instance in evaluation.changed:
            logger.info(f"[STATUS_ENGINE] instance_id={instance.id} status={instance.status.value}")
        for instance_id in evaluation.missed:
            await self._event_log.append(EventType.MISS, instance_id)

        return evaluation


def _is_clock_transition(persisted: DailySessionInstance, updated: DailySessionInstance) -> bool:
    """Only overwrite instances the user has not touched since evaluation."""
    return (
        not persisted.status.is_terminal
        and persisted.scheduled_at == updated.scheduled_at
        and persisted.status != updated.status
    )
