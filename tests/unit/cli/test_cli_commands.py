"""Tests for the harborsync CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from harborsync.cli import app
from harborsync.cli.schedule import _parse_days, _parse_time
from harborsync.models.schedule import WEEKDAYS, Weekday

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path):
    """Source folder with two photos plus a config pointing at it."""
    source = tmp_path / "photos"
    source.mkdir()
    (source / "one.jpg").write_text("one")
    (source / "two.jpg").write_text("two")

    config_path = tmp_path / "harborsync.yaml"
    config_path.write_text(
        "backup:\n"
        "  destination_mode: folder\n"
        f"  sources: ['{source}']\n"
        f"  folder_destination: '{tmp_path / 'backup'}'\n"
        "schedule:\n"
        "  type: weekly\n"
        "  hour: 2\n"
        "  minute: 0\n"
        "  days: [mon, wed]\n"
        "state:\n"
        f"  state_dir: '{tmp_path / 'state'}'\n"
    )
    return tmp_path, config_path


class TestRunCommand:
    """Tests for run command."""

    def test_run_copies_files(self, workspace):
        """Should copy every source file and report the counts."""
        root, config_path = workspace

        result = runner.invoke(app, ["run", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "Backup completed!" in result.output
        assert "Uploaded: 2" in result.output
        assert (root / "backup" / "one.jpg").read_text() == "one"
        assert (root / "backup" / "two.jpg").read_text() == "two"

    def test_second_run_skips_unchanged(self, workspace):
        """Should skip files already in the destination."""
        _, config_path = workspace
        runner.invoke(app, ["run", "--config", str(config_path)])

        result = runner.invoke(app, ["run", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "Uploaded: 0" in result.output
        assert "Skipped: 2" in result.output

    def test_dry_run_copies_nothing(self, workspace):
        """Should plan without touching the destination."""
        root, config_path = workspace

        result = runner.invoke(app, ["run", "--config", str(config_path), "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Dry run finished!" in result.output
        assert not (root / "backup" / "one.jpg").exists()

    def test_run_without_destination_fails(self, tmp_path):
        """Should refuse to start when no destination is configured."""
        config_path = tmp_path / "harborsync.yaml"
        config_path.write_text(
            "backup:\n"
            "  destination_mode: folder\n"
            "state:\n"
            f"  state_dir: '{tmp_path / 'state'}'\n"
        )

        result = runner.invoke(app, ["run", "--config", str(config_path)])

        assert result.exit_code == 1
        assert "Backup not started" in result.output

    def test_missing_config(self, tmp_path):
        """Should report a configuration error."""
        result = runner.invoke(
            app, ["run", "--config", str(tmp_path / "missing.yaml")]
        )

        assert result.exit_code == 1
        assert "Configuration Error" in result.output


class TestResumeCommand:
    """Tests for resume command."""

    def test_nothing_to_resume(self, workspace):
        """Should exit with an error when no session is paused."""
        _, config_path = workspace

        result = runner.invoke(app, ["resume", "--config", str(config_path)])

        assert result.exit_code == 1
        assert "No paused session to resume." in result.output


class TestStatusCommand:
    """Tests for status command."""

    def test_status(self, workspace):
        """Should show destination, session and schedule."""
        root, config_path = workspace

        result = runner.invoke(app, ["status", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "Destination mode: folder" in result.output
        assert "Sources: 1" in result.output
        assert "Resumable session: none" in result.output
        assert "Schedule: Mon, Wed at 02:00" in result.output
        assert "Next scheduled run:" in result.output

    def test_status_lists_blockers(self, tmp_path):
        """Should list why a run cannot start."""
        config_path = tmp_path / "harborsync.yaml"
        config_path.write_text(
            "backup:\n"
            "  destination_mode: folder\n"
            "state:\n"
            f"  state_dir: '{tmp_path / 'state'}'\n"
        )

        result = runner.invoke(app, ["status", "--config", str(config_path)])

        assert result.exit_code == 0
        assert "Cannot start: folder_destination is not set" in result.output


class TestResetCommand:
    """Tests for reset command."""

    def test_reset_with_yes(self, workspace):
        """Should reset without prompting."""
        _, config_path = workspace
        runner.invoke(app, ["run", "--config", str(config_path)])

        result = runner.invoke(
            app, ["reset", "--config", str(config_path), "--yes", "--wipe-manifest"]
        )

        assert result.exit_code == 0, result.output
        assert "Reset complete." in result.output

    def test_reset_declined(self, workspace):
        """Should abort when the prompt is declined."""
        _, config_path = workspace

        result = runner.invoke(
            app, ["reset", "--config", str(config_path)], input="n\n"
        )

        assert result.exit_code == 1
        assert "Reset complete." not in result.output


class TestValidateCommand:
    """Tests for validate command."""

    def test_valid_config(self, workspace):
        """Should accept a valid configuration."""
        _, config_path = workspace

        result = runner.invoke(app, ["validate", str(config_path)])

        assert result.exit_code == 0
        assert "Configuration is valid!" in result.output

    def test_warns_about_missing_source(self, tmp_path):
        """Should warn when a source folder does not exist."""
        config_path = tmp_path / "harborsync.yaml"
        config_path.write_text(
            "backup:\n"
            f"  sources: ['{tmp_path / 'gone'}']\n"
            f"  folder_destination: '{tmp_path / 'backup'}'\n"
        )

        result = runner.invoke(app, ["validate", str(config_path)])

        assert result.exit_code == 0
        assert "Source folder does not exist" in result.output

    def test_invalid_config(self, tmp_path):
        """Should fail on a schema violation."""
        config_path = tmp_path / "harborsync.yaml"
        config_path.write_text("schedule:\n  type: interval\n  hours: 99\n")

        result = runner.invoke(app, ["validate", str(config_path)])

        assert result.exit_code == 1
        assert "Validation failed" in result.output


class TestScheduleCommands:
    """Tests for schedule sub-commands."""

    def test_show_from_config(self, workspace):
        """Should show the configured policy before any change."""
        _, config_path = workspace

        result = runner.invoke(app, ["schedule", "show", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "Policy: Mon, Wed at 02:00" in result.output
        assert "On battery: skip" in result.output
        assert "from config file" in result.output
        assert "Last run: never" in result.output

    def test_set_interval_persists(self, workspace):
        """Should save the new policy to schedule.json."""
        root, config_path = workspace

        result = runner.invoke(
            app,
            ["schedule", "set", "--config", str(config_path), "--interval", "6"],
        )

        assert result.exit_code == 0, result.output
        assert "Schedule set: Every 6 hours" in result.output
        stored = json.loads((root / "state" / "schedule.json").read_text())
        assert stored["policy"] == {
            "type": "interval",
            "hours": 6,
            "skip_on_battery": True,
        }

        shown = runner.invoke(app, ["schedule", "show", "--config", str(config_path)])
        assert "Policy: Every 6 hours" in shown.output
        assert "from config file" not in shown.output

    def test_set_weekly_allow_battery(self, workspace):
        """Should build a weekly policy from --at and --days."""
        root, config_path = workspace

        result = runner.invoke(
            app,
            [
                "schedule",
                "set",
                "--config",
                str(config_path),
                "--weekly",
                "--at",
                "03:30",
                "--days",
                "weekdays",
                "--allow-battery",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Schedule set: Weekdays at 03:30" in result.output
        stored = json.loads((root / "state" / "schedule.json").read_text())
        assert stored["policy"]["skip_on_battery"] is False

    def test_set_disabled(self, workspace):
        """Should turn scheduling off."""
        _, config_path = workspace

        result = runner.invoke(
            app, ["schedule", "set", "--config", str(config_path), "--disabled"]
        )

        assert result.exit_code == 0, result.output
        assert "Backups are not scheduled" in result.output

    def test_set_requires_one_mode(self, workspace):
        """Should reject zero or several modes."""
        _, config_path = workspace

        none_chosen = runner.invoke(app, ["schedule", "set", "--config", str(config_path)])
        both_chosen = runner.invoke(
            app,
            ["schedule", "set", "--config", str(config_path), "--disabled", "--weekly"],
        )

        assert none_chosen.exit_code == 1
        assert both_chosen.exit_code == 1

    def test_set_rejects_out_of_range_interval(self, workspace):
        """Should reject intervals outside 1-48 hours."""
        _, config_path = workspace

        result = runner.invoke(
            app,
            ["schedule", "set", "--config", str(config_path), "--interval", "72"],
        )

        assert result.exit_code == 1


class TestScheduleParsing:
    """Tests for --at and --days parsing."""

    def test_parse_time(self):
        """Should split HH:MM."""
        assert _parse_time("02:30") == (2, 30)

    @pytest.mark.parametrize("value", ["2", "25:00", "02:61", "aa:bb"])
    def test_parse_time_invalid(self, value):
        """Should reject malformed or out-of-range times."""
        import typer

        with pytest.raises(typer.BadParameter):
            _parse_time(value)

    def test_parse_days_shortcuts(self):
        """Should expand named day groups."""
        assert _parse_days("daily") == set(Weekday)
        assert _parse_days("weekdays") == set(WEEKDAYS)
        assert _parse_days("Weekends") == {Weekday.SATURDAY, Weekday.SUNDAY}

    def test_parse_days_list(self):
        """Should accept full or short day names."""
        assert _parse_days("monday, wed,Fri") == {
            Weekday.MONDAY,
            Weekday.WEDNESDAY,
            Weekday.FRIDAY,
        }

    def test_parse_days_unknown(self):
        """Should reject unknown day names."""
        import typer

        with pytest.raises(typer.BadParameter):
            _parse_days("mon,funday")
