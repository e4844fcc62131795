"""Unit tests for the notification planner.

Tests cover:
- Plan building (past, terminal, disabled and quiet-hours instances dropped)
- Hash dedup guard (identical inputs submit once)
- Dispatcher failure keeping the old hash so the next trigger retries
- Superseded passes never recording their hash
- Debounce coalescing of rapid triggers
- Clearing the plan when notifications are turned off
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from mandala_day.notifications.planner import NotificationPlanner, PlanOutcome, build_plan, plan_hash
from mandala_day.schedule.repository import default_user_schedule
from mandala_day.sessions.types import QuietHours, SessionStatus


@pytest.fixture
def schedule():
    return default_user_schedule()


@pytest.fixture
def planner(dispatcher, clock) -> NotificationPlanner:
    return NotificationPlanner(dispatcher, clock, debounce_seconds=0.01)


@pytest.fixture
def day(make_instance):
    """Instances at 05:00, 10:00, 15:00 and 23:30; the clock starts at 06:00."""
    return [
        make_instance("session1_waking_view", datetime(2026, 3, 2, 5, 0, tzinfo=UTC), status=SessionStatus.MISSED),
        make_instance("session2_embodying_presence", datetime(2026, 3, 2, 10, 0, tzinfo=UTC)),
        make_instance("session4_cutting_through", datetime(2026, 3, 2, 15, 0, tzinfo=UTC)),
        make_instance("session6_dissolution_rest", datetime(2026, 3, 2, 23, 30, tzinfo=UTC)),
    ]


class TestBuildPlan:
    """Test reminder selection."""

    def test_past_instances_dropped(self, day, schedule, clock):
        reminders = build_plan(day, schedule, clock.now(), UTC)

        assert [reminder.template_id for reminder in reminders] == [
            "session2_embodying_presence",
            "session4_cutting_through",
            "session6_dissolution_rest",
        ]
        assert reminders[0].title == "Embodying Presence"
        assert reminders[0].body == "Let breath and awareness descend into the body."
        assert reminders[0].fire_at == datetime(2026, 3, 2, 10, 0, tzinfo=UTC)

    def test_instance_scheduled_exactly_now_dropped(self, make_instance, schedule, clock):
        instance = make_instance("session1_waking_view", clock.now())
        assert build_plan([instance], schedule, clock.now(), UTC) == []

    def test_quiet_hours_suppress(self, day, schedule, clock):
        quiet = schedule.model_copy(update={"quiet_hours": QuietHours(start="22:00", end="07:00", enabled=True)})

        reminders = build_plan(day, quiet, clock.now(), UTC)

        assert "session6_dissolution_rest" not in {reminder.template_id for reminder in reminders}
        assert len(reminders) == 2

    def test_terminal_and_disabled_dropped(self, day, schedule, clock):
        day[1] = day[1].model_copy(update={"status": SessionStatus.COMPLETED})
        disabled = schedule.model_copy(
            update={"enabled_sessions": {**schedule.enabled_sessions, "session4_cutting_through": False}}
        )

        reminders = build_plan(day, disabled, clock.now(), UTC)

        assert [reminder.template_id for reminder in reminders] == ["session6_dissolution_rest"]

    def test_unknown_template_dropped(self, make_instance, schedule, clock):
        instance = make_instance("session9_unknown", clock.now() + timedelta(hours=1))
        assert build_plan([instance], schedule, clock.now(), UTC) == []


class TestPlanHash:
    """Test the plan fingerprint."""

    def test_order_independent(self, day, schedule, clock):
        reminders = build_plan(day, schedule, clock.now(), UTC)
        assert plan_hash(reminders, schedule.quiet_hours) == plan_hash(list(reversed(reminders)), schedule.quiet_hours)

    def test_sensitive_to_quiet_hours_and_times(self, day, schedule, clock):
        reminders = build_plan(day, schedule, clock.now(), UTC)
        baseline = plan_hash(reminders, schedule.quiet_hours)

        assert plan_hash(reminders, QuietHours(enabled=True)) != baseline
        assert plan_hash(reminders[:-1], schedule.quiet_hours) != baseline


class TestPlanNow:
    """Test planning passes against the dispatcher."""

    @pytest.mark.asyncio
    async def test_identical_inputs_submit_once(self, planner, dispatcher, day, schedule):
        first = await planner.plan_now(day, schedule)
        second = await planner.plan_now(day, schedule)

        assert first == PlanOutcome.APPLIED
        assert second == PlanOutcome.UNCHANGED
        assert dispatcher.cancel_all_calls == 1
        assert len(dispatcher.scheduled) == 3
        assert len(planner.dispatched_tokens) == 3

    @pytest.mark.asyncio
    async def test_status_change_of_past_instance_causes_no_churn(self, planner, dispatcher, day, schedule):
        await planner.plan_now(day, schedule)
        day[0] = day[0].model_copy(update={"status": SessionStatus.COMPLETED})

        assert await planner.plan_now(day, schedule) == PlanOutcome.UNCHANGED
        assert dispatcher.cancel_all_calls == 1

    @pytest.mark.asyncio
    async def test_completing_future_instance_replans(self, planner, dispatcher, day, schedule):
        await planner.plan_now(day, schedule)
        day[1] = day[1].model_copy(update={"status": SessionStatus.COMPLETED})

        assert await planner.plan_now(day, schedule) == PlanOutcome.APPLIED
        assert dispatcher.active_instance_ids == {
            "2026-03-02_session4_cutting_through",
            "2026-03-02_session6_dissolution_rest",
        }

    @pytest.mark.asyncio
    async def test_failure_keeps_old_hash_and_retries(self, planner, dispatcher, day, schedule):
        dispatcher.fail = True

        assert await planner.plan_now(day, schedule) == PlanOutcome.FAILED
        assert planner.last_applied_hash is None

        dispatcher.fail = False
        assert await planner.plan_now(day, schedule) == PlanOutcome.APPLIED
        assert planner.last_applied_hash is not None
        assert len(dispatcher.active) == 3

    @pytest.mark.asyncio
    async def test_failure_after_success_keeps_previous_hash(self, planner, dispatcher, day, schedule):
        await planner.plan_now(day, schedule)
        applied = planner.last_applied_hash
        day[2] = day[2].model_copy(update={"status": SessionStatus.SKIPPED})
        dispatcher.fail = True

        assert await planner.plan_now(day, schedule) == PlanOutcome.FAILED
        assert planner.last_applied_hash == applied

    @pytest.mark.asyncio
    async def test_superseded_pass_does_not_record_hash(self, planner, dispatcher, clock, day, schedule):
        newer = day[:2]

        outcomes = await asyncio.gather(
            planner.plan_now(day, schedule),
            planner.plan_now(newer, schedule),
        )

        assert outcomes == [PlanOutcome.SUPERSEDED, PlanOutcome.APPLIED]
        assert planner.version == 2
        assert dispatcher.active_instance_ids == {"2026-03-02_session2_embodying_presence"}
        expected = plan_hash(build_plan(newer, schedule, clock.now(), UTC), schedule.quiet_hours)
        assert planner.last_applied_hash == expected


class TestDebounce:
    """Test debounced requests."""

    @pytest.mark.asyncio
    async def test_rapid_requests_coalesce_into_one_pass(self, planner, dispatcher, day, schedule):
        for _ in range(5):
            planner.request_plan(day, schedule)
            await asyncio.sleep(0)

        await planner.wait_idle()

        assert planner.version == 1
        assert dispatcher.cancel_all_calls == 1
        assert len(dispatcher.scheduled) == 3

    @pytest.mark.asyncio
    async def test_latest_request_wins(self, planner, dispatcher, day, schedule):
        planner.request_plan(day, schedule)
        planner.request_plan(day[:2], schedule)

        await planner.wait_idle()

        assert dispatcher.active_instance_ids == {"2026-03-02_session2_embodying_presence"}

    @pytest.mark.asyncio
    async def test_close_drops_pending_request(self, planner, dispatcher, day, schedule):
        planner.request_plan(day, schedule)

        await planner.close()
        await asyncio.sleep(0.03)

        assert dispatcher.scheduled == []


class TestClear:
    """Test turning reminders off."""

    @pytest.mark.asyncio
    async def test_clear_cancels_and_forgets_hash(self, planner, dispatcher, day, schedule):
        await planner.plan_now(day, schedule)

        await planner.clear()

        assert dispatcher.active == {}
        assert planner.last_applied_hash is None
        assert planner.dispatched_tokens == []
        # Same inputs are submitted again once re-enabled
        assert await planner.plan_now(day, schedule) == PlanOutcome.APPLIED
