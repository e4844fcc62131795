"""Instance store.

Persists per-day instance collections under the ``daily_instances`` key
(a map of day -> instance list). Every read and write goes through one
asyncio.Lock, and read-modify-write sequences happen entirely inside it, so a
background status write can never be clobbered by a stale foreground write
(or vice versa).

Retention: days older than ``retention_days`` before the clock's current day
are dropped on every bulk write.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import timedelta

from loguru import logger
from pydantic import ValidationError

from mandala_day.core.clock import Clock, format_day, local_today
from mandala_day.core.errors import InstanceNotFoundError, InvariantViolationError, PersistenceError
from mandala_day.sessions.types import DailySessionInstance, sort_instances
from mandala_day.storage.base import KeyValueStore, StorageKeys, read_json, write_json

DayMap = dict[str, list[DailySessionInstance]]
ReplacePredicate = Callable[[DailySessionInstance, DailySessionInstance], bool]

DEFAULT_RETENTION_DAYS = 30


@dataclass
class UpsertResult:
    """Outcome of a multi-instance upsert."""

    instances: list[DailySessionInstance]
    replaced_ids: list[str]


class InstanceStore:
    """Serialized access to the persisted day collections."""

    def __init__(self, store: KeyValueStore, clock: Clock, retention_days: int = DEFAULT_RETENTION_DAYS):
        self._store = store
        self._clock = clock
        self._retention_days = retention_days
        self._lock = asyncio.Lock()

    async def _read_all(self) -> DayMap:
        data = await read_json(self._store, StorageKeys.DAILY_INSTANCES)
        if data is None:
            return {}
        try:
            return {
                day: [DailySessionInstance.model_validate(item) for item in items]
                for day, items in data.items()
            }
        except (ValidationError, AttributeError, TypeError) as e:
            raise PersistenceError(StorageKeys.DAILY_INSTANCES, "get", e) from e

    async def _write_all(self, days: DayMap) -> None:
        payload = {
            day: [instance.to_json_dict() for instance in sort_instances(instances)]
            for day, instances in days.items()
        }
        await write_json(self._store, StorageKeys.DAILY_INSTANCES, payload)

    def _prune(self, days: DayMap) -> DayMap:
        cutoff = format_day(local_today(self._clock) - timedelta(days=self._retention_days))
        expired = [day for day in days if day < cutoff]
        for day in expired:
            del days[day]
        if expired:
            logger.info(f"[INSTANCE_STORE] Pruned {len(expired)} day(s) older than {cutoff}")
        return days

    async def get_day(self, day: str) -> list[DailySessionInstance] | None:
        """Read one day without generating it.

        Returns:
            Sorted instances, or None if the day was never generated

        Raises:
            PersistenceError: If the store read fails
        """
        async with self._lock:
            days = await self._read_all()
        instances = days.get(day)
        return sort_instances(instances) if instances is not None else None

    async def list_days(self) -> list[str]:
        """Days currently persisted, oldest first."""
        async with self._lock:
            days = await self._read_all()
        return sorted(days)

    async def save_day(self, day: str, instances: list[DailySessionInstance]) -> None:
        """Bulk-write one day, replacing whatever was stored for it.

        Raises:
            PersistenceError: If the store read or write fails
        """
        async with self._lock:
            await self._save_day_locked(day, instances)

    async def _save_day_locked(self, day: str, instances: list[DailySessionInstance]) -> None:
        days = await self._read_all()
        days[day] = sort_instances(instances)
        await self._write_all(self._prune(days))
        logger.debug(f"[INSTANCE_STORE] Saved {len(instances)} instances for {day}")

    async def get_or_generate_day(
        self,
        day: str,
        generate: Callable[[], list[DailySessionInstance]],
    ) -> list[DailySessionInstance]:
        """Return the stored day, generating and persisting it first if absent.

        Reading and generating happen in the same critical section, so two
        concurrent callers never both generate the same day.
        """
        async with self._lock:
            days = await self._read_all()
            existing = days.get(day)
            if existing is not None:
                return sort_instances(existing)
            instances = generate()
            await self._save_day_locked(day, instances)
            logger.info(f"[INSTANCE_STORE] Generated day {day} with {len(instances)} instances")
            return sort_instances(instances)

    async def upsert_instance(self, instance: DailySessionInstance) -> list[DailySessionInstance]:
        """Replace one instance inside its persisted day.

        Returns:
            The day's instances after the write, sorted

        Raises:
            InvariantViolationError: If the instance's day was never generated
            InstanceNotFoundError: If the day exists but does not contain the id
            PersistenceError: If the store read or write fails
        """
        result = await self.upsert_instances([instance])
        return result.instances

    async def upsert_instances(
        self,
        instances: Iterable[DailySessionInstance],
        replace_if: ReplacePredicate | None = None,
    ) -> UpsertResult:
        """Replace several instances of the same day in one read-modify-write.

        Args:
            instances: Updated instances, all belonging to the same day
            replace_if: Optional predicate (persisted, updated) -> bool. When it
                returns False the persisted instance is kept.
        """
        updates = list(instances)
        if not updates:
            return UpsertResult(instances=[], replaced_ids=[])
        day = updates[0].date
        if any(instance.date != day for instance in updates):
            raise InvariantViolationError("MIXED_DAY_UPSERT", [instance.id for instance in updates])

        async with self._lock:
            # Read the persisted day, not a cached one, so concurrent writers are not lost.
            days = await self._read_all()
            current = days.get(day)
            if current is None:
                raise InvariantViolationError(
                    "DAY_NOT_GENERATED",
                    [f"No instances exist for {day}; only the generator may create a day"],
                )

            by_id = {instance.id: instance for instance in current}
            replaced_ids: list[str] = []
            for instance in updates:
                current_instance = by_id.get(instance.id)
                if current_instance is None:
                    raise InstanceNotFoundError(instance.id)
                if replace_if is not None and not replace_if(current_instance, instance):
                    logger.debug(f"[INSTANCE_STORE] Kept persisted {instance.id} (status={current_instance.status.value})")
                    continue
                by_id[instance.id] = instance
                replaced_ids.append(instance.id)

            merged = sort_instances(list(by_id.values()))
            days[day] = merged
            await self._write_all(days)
            return UpsertResult(instances=merged, replaced_ids=replaced_ids)

    async def regenerate_day(
        self,
        day: str,
        regenerate: Callable[[list[DailySessionInstance] | None], list[DailySessionInstance]],
    ) -> list[DailySessionInstance]:
        """Rebuild a day from its persisted state inside the lock.

        Args:
            day: Day key
            regenerate: Receives the persisted instances (None if the day was
                never generated) and returns the replacement day

        Returns:
            The written day, sorted
        """
        async with self._lock:
            days = await self._read_all()
            instances = regenerate(days.get(day))
            await self._save_day_locked(day, instances)
            logger.info(f"[INSTANCE_STORE] Regenerated day {day} with {len(instances)} instances")
            return sort_instances(instances)
