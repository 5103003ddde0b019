"""Tests for schedule policy models."""

from datetime import date, datetime

import pytest
from pydantic import TypeAdapter, ValidationError

from harborsync.models.schedule import (
    WEEKDAYS,
    DisabledPolicy,
    IntervalPolicy,
    SchedulePolicy,
    ScheduleState,
    Weekday,
    WeeklyPolicy,
)


class TestWeekday:
    """Tests for the Weekday enum."""

    def test_from_date(self):
        """Should map a calendar date to its weekday."""
        # 2026-01-06 is a Tuesday
        assert Weekday.from_date(date(2026, 1, 6)) == Weekday.TUESDAY

    def test_index_is_monday_first(self):
        """Should order days like date.weekday()."""
        assert Weekday.MONDAY.index == 0
        assert Weekday.SUNDAY.index == 6


class TestPolicies:
    """Tests for the three policy shapes."""

    def test_interval_bounds(self):
        """Should reject intervals outside 1..48 hours."""
        with pytest.raises(ValidationError):
            IntervalPolicy(hours=0)
        with pytest.raises(ValidationError):
            IntervalPolicy(hours=49)

    def test_weekly_hour_bounds(self):
        """Should reject an hour past 23."""
        with pytest.raises(ValidationError):
            WeeklyPolicy(hour=24)

    def test_disabled_never_skips_on_battery(self):
        """Should report skip_on_battery as False."""
        assert DisabledPolicy().skip_on_battery is False

    @pytest.mark.parametrize(
        "policy,expected",
        [
            (DisabledPolicy(), "Backups are not scheduled"),
            (IntervalPolicy(hours=1), "Every 1 hour"),
            (IntervalPolicy(hours=6), "Every 6 hours"),
            (WeeklyPolicy(hour=2, minute=5), "Daily at 02:05"),
            (WeeklyPolicy(days=set(WEEKDAYS)), "Weekdays at 02:00"),
            (
                WeeklyPolicy(hour=23, days={Weekday.WEDNESDAY, Weekday.MONDAY}),
                "Mon, Wed at 23:00",
            ),
            (WeeklyPolicy(days=set()), "No days selected"),
        ],
    )
    def test_describe(self, policy, expected):
        """Should render a human description."""
        assert policy.describe() == expected

    def test_discriminated_union(self):
        """Should pick the policy class from the type field."""
        adapter = TypeAdapter(SchedulePolicy)

        policy = adapter.validate_python({"type": "weekly", "days": ["mon", "fri"]})

        assert isinstance(policy, WeeklyPolicy)
        assert policy.days == {Weekday.MONDAY, Weekday.FRIDAY}

    def test_state_round_trip_keeps_last_run(self):
        """Should restore the policy and last run time from JSON."""
        state = ScheduleState(
            policy=IntervalPolicy(hours=3, skip_on_battery=False),
            last_run_at=datetime(2026, 1, 6, 10, 0),
        )

        restored = ScheduleState.model_validate_json(state.model_dump_json())

        assert restored == state
