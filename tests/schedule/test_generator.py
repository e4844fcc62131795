"""Unit tests for the instance generator.

Tests cover:
- One UPCOMING instance per enabled template, canonical order
- Times of day expressed in the configured zone
- Weekend overlay resolution
- Reconciling a regenerated day with one the user already acted on
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from mandala_day.schedule.generator import (
    generate_daily_instances,
    reconcile_day,
    resolve_schedule_for_date,
    scheduled_instant,
)
from mandala_day.schedule.repository import default_user_schedule
from mandala_day.sessions.types import AppSettings, SessionStatus


class TestGenerateDailyInstances:
    """Test day generation."""

    def test_default_schedule_generates_six(self):
        instances = generate_daily_instances("2026-03-02", default_user_schedule(), UTC)

        assert len(instances) == 6
        assert instances[0].id == "2026-03-02_session1_waking_view"
        assert instances[0].scheduled_at == datetime(2026, 3, 2, 7, 0, tzinfo=UTC)
        assert instances[-1].template_id == "session6_dissolution_rest"
        assert all(instance.status == SessionStatus.UPCOMING for instance in instances)
        assert all(instance.date == "2026-03-02" for instance in instances)
        assert all(instance.snooze_count == 0 for instance in instances)

    def test_disabled_templates_skipped(self):
        schedule = default_user_schedule()
        schedule.enabled_sessions["session3_compassion_activation"] = False

        instances = generate_daily_instances("2026-03-02", schedule, UTC)

        assert len(instances) == 5
        assert "session3_compassion_activation" not in {instance.template_id for instance in instances}

    def test_custom_times_reorder_day(self):
        schedule = default_user_schedule()
        schedule.session_times["session6_dissolution_rest"] = "05:30"

        instances = generate_daily_instances("2026-03-02", schedule, UTC)

        assert instances[0].template_id == "session6_dissolution_rest"
        assert instances[0].scheduled_at == datetime(2026, 3, 2, 5, 30, tzinfo=UTC)

    def test_times_in_configured_zone(self):
        new_york = ZoneInfo("America/New_York")

        instances = generate_daily_instances("2026-03-02", default_user_schedule(), new_york)

        # EST (UTC-5) before the March DST change
        assert instances[0].scheduled_at.astimezone(UTC) == datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
        assert instances[0].date == "2026-03-02"

    def test_scheduled_instant_uses_day_key(self):
        instant = scheduled_instant("2026-12-31", "21:00", UTC)
        assert instant == datetime(2026, 12, 31, 21, 0, tzinfo=UTC)


class TestWeekendOverlay:
    """Test weekend schedule resolution."""

    def _settings(self, enabled: bool = True) -> AppSettings:
        return AppSettings(
            weekend_schedule_enabled=enabled,
            weekend_schedule={"sessionTimes": {"session1_waking_view": "09:00"}},
        )

    def test_overlay_applies_on_saturday(self):
        schedule = resolve_schedule_for_date("2026-03-07", default_user_schedule(), self._settings())

        assert schedule.session_times["session1_waking_view"] == "09:00"
        assert schedule.session_times["session2_embodying_presence"] == "10:00"

    def test_overlay_ignored_on_weekday(self):
        schedule = resolve_schedule_for_date("2026-03-06", default_user_schedule(), self._settings())
        assert schedule.session_times["session1_waking_view"] == "07:00"

    def test_overlay_ignored_when_disabled(self):
        schedule = resolve_schedule_for_date("2026-03-08", default_user_schedule(), self._settings(enabled=False))
        assert schedule.session_times["session1_waking_view"] == "07:00"

    def test_invalid_overlay_falls_back(self):
        settings = AppSettings(
            weekend_schedule_enabled=True,
            weekend_schedule={"sessionTimes": {"session1_waking_view": "late"}},
        )
        base = default_user_schedule()

        assert resolve_schedule_for_date("2026-03-07", base, settings) == base


class TestReconcileDay:
    """Test merging a regenerated day over the persisted one."""

    def test_untouched_instances_take_new_times(self):
        existing = generate_daily_instances("2026-03-02", default_user_schedule(), UTC)
        schedule = default_user_schedule()
        schedule.session_times["session2_embodying_presence"] = "11:15"
        fresh = generate_daily_instances("2026-03-02", schedule, UTC)

        merged = reconcile_day(existing, fresh)

        assert merged[1].scheduled_at == datetime(2026, 3, 2, 11, 15, tzinfo=UTC)

    def test_acted_on_instances_keep_state(self):
        existing = generate_daily_instances("2026-03-02", default_user_schedule(), UTC)
        completed = existing[0].model_copy(update={"status": SessionStatus.COMPLETED})
        snoozed = existing[1].model_copy(
            update={"scheduled_at": existing[1].scheduled_at + timedelta(minutes=10), "snooze_count": 1}
        )
        existing = [completed, snoozed, *existing[2:]]
        schedule = default_user_schedule()
        schedule.session_times["session1_waking_view"] = "06:00"
        schedule.session_times["session2_embodying_presence"] = "09:00"

        merged = reconcile_day(existing, generate_daily_instances("2026-03-02", schedule, UTC))

        assert merged[0] == completed
        assert merged[1] == snoozed

    def test_missed_instance_keeps_state_when_time_moves(self):
        existing = generate_daily_instances("2026-03-02", default_user_schedule(), UTC)
        missed = existing[0].model_copy(update={"status": SessionStatus.MISSED})
        existing = [missed, *existing[1:]]
        schedule = default_user_schedule()
        schedule.session_times["session1_waking_view"] = "09:30"

        merged = reconcile_day(existing, generate_daily_instances("2026-03-02", schedule, UTC))

        assert merged[0] == missed
        assert merged[0].status == SessionStatus.MISSED

    def test_id_set_follows_enabled_templates(self):
        existing = generate_daily_instances("2026-03-02", default_user_schedule(), UTC)
        schedule = default_user_schedule()
        schedule.enabled_sessions["session6_dissolution_rest"] = False

        merged = reconcile_day(existing, generate_daily_instances("2026-03-02", schedule, UTC))

        assert [instance.template_id for instance in merged][-1] == "session5_integration_motion"
        assert len(merged) == 5

    def test_no_existing_day_returns_fresh(self):
        fresh = generate_daily_instances("2026-03-02", default_user_schedule(), UTC)
        assert reconcile_day(None, fresh) == fresh
