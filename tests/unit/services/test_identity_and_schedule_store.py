"""Tests for DeviceIdentityStore and ScheduleStore."""

from datetime import datetime
from unittest.mock import patch

from harborsync.models.schedule import (
    DisabledPolicy,
    IntervalPolicy,
    ScheduleState,
    Weekday,
    WeeklyPolicy,
)
from harborsync.services.identity_service import DeviceIdentityStore
from harborsync.services.schedule_store import ScheduleStore


class TestDeviceIdentityStore:
    """Tests for DeviceIdentityStore."""

    def test_created_once_and_persisted(self, tmp_path):
        """Should return the same id across store instances."""
        first = DeviceIdentityStore(tmp_path).get_or_create()
        second = DeviceIdentityStore(tmp_path).get_or_create()

        assert first == second
        assert (tmp_path / "device_id").read_text().strip() == first

    def test_regenerate(self, tmp_path):
        """Should replace the id on disk."""
        store = DeviceIdentityStore(tmp_path)
        old = store.get_or_create()

        new = store.regenerate()

        assert new != old
        assert store.get_or_create() == new
        assert DeviceIdentityStore(tmp_path).get_or_create() == new

    def test_blank_file_replaced(self, tmp_path):
        """Should create a fresh id when the file is empty."""
        (tmp_path / "device_id").write_text("\n")

        value = DeviceIdentityStore(tmp_path).get_or_create()

        assert value
        assert (tmp_path / "device_id").read_text().strip() == value


class TestScheduleStore:
    """Tests for ScheduleStore."""

    def test_default_policy_when_missing(self, tmp_path):
        """Should fall back to the given policy."""
        store = ScheduleStore(tmp_path)

        state = store.load(default_policy=IntervalPolicy(hours=4))

        assert state.policy == IntervalPolicy(hours=4)
        assert state.last_run_at is None
        assert store.exists() is False

    def test_stored_policy_wins_over_default(self, tmp_path):
        """Should prefer the policy the user saved."""
        store = ScheduleStore(tmp_path)
        weekly = WeeklyPolicy(hour=3, days={Weekday.SUNDAY})
        store.save_policy(weekly)

        state = store.load(default_policy=IntervalPolicy(hours=4))

        assert state.policy == weekly

    def test_save_policy_keeps_last_run(self, tmp_path):
        """Should preserve the last run time when the policy changes."""
        store = ScheduleStore(tmp_path)
        when = datetime(2026, 1, 6, 2, 0)
        store.save(ScheduleState(policy=IntervalPolicy(), last_run_at=when))

        state = store.save_policy(DisabledPolicy())

        assert state.last_run_at == when
        assert store.load().policy == DisabledPolicy()

    def test_corrupt_file_uses_default(self, tmp_path):
        """Should ignore an unreadable file."""
        (tmp_path / "schedule.json").write_text("[broken")
        store = ScheduleStore(tmp_path)

        assert store.load(default_policy=IntervalPolicy()).policy == IntervalPolicy()

    def test_save_failure(self, tmp_path):
        """Should return False when the file cannot be written."""
        store = ScheduleStore(tmp_path)

        with patch("builtins.open", side_effect=OSError("read-only")):
            assert store.save(ScheduleState()) is False
