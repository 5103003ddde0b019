"""Tests for configuration models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from harborsync.models.config import (
    BackupMode,
    BackupSettings,
    DestinationMode,
    LogSettings,
    StateSettings,
)


class TestBackupSettings:
    """Tests for BackupSettings."""

    def test_server_url_normalized(self):
        """Should add a scheme and strip trailing slashes."""
        settings = BackupSettings(server_url=" photos.local:2283/ ")

        assert settings.server_url == "http://photos.local:2283"

    def test_blank_server_url_is_none(self):
        """Should treat a blank server url as unset."""
        assert BackupSettings(server_url="  ").server_url is None

    def test_folder_mode_requires_destination(self):
        """Should block starting without a folder destination."""
        settings = BackupSettings(destination_mode=DestinationMode.FOLDER)

        assert settings.start_blockers() == ["folder_destination is not set"]

    def test_both_mode_requires_server_credentials(self):
        """Should block when server mode lacks url or key."""
        settings = BackupSettings(
            destination_mode=DestinationMode.BOTH,
            folder_destination=Path("/backup"),
            server_url="https://photos.example",
        )

        assert settings.start_blockers() == ["server_url and api_key are required"]

    def test_ready_settings_have_no_blockers(self):
        """Should allow a start with a destination set."""
        settings = BackupSettings(folder_destination=Path("/backup"))

        assert settings.start_blockers() == []

    def test_snapshot_ignores_unused_destination(self):
        """Should leave server fields out of a folder-only snapshot."""
        settings = BackupSettings(
            folder_destination=Path("/backup"),
            server_url="https://photos.example",
            backup_mode=BackupMode.MIRROR,
        )

        snapshot = settings.snapshot("device-1")

        assert snapshot.folder_destination == str(Path("/backup"))
        assert snapshot.server_url is None
        assert snapshot.device_id is None
        assert snapshot.backup_mode == "mirror"

    def test_limit_must_be_positive(self):
        """Should reject a zero item limit."""
        with pytest.raises(ValidationError):
            BackupSettings(limit=0)


class TestStateAndLogSettings:
    """Tests for StateSettings and LogSettings."""

    def test_temp_dir_defaults_under_state_dir(self):
        """Should put the temp cache inside the state directory."""
        settings = StateSettings(state_dir=Path("/var/harbor"))

        assert settings.resolved_temp_dir == Path("/var/harbor/tmp")

    def test_display_lines_cannot_exceed_retention(self):
        """Should reject showing more lines than are kept."""
        with pytest.raises(ValidationError):
            LogSettings(max_log_lines=100, display_lines=200)

    def test_invalid_level(self):
        """Should reject unknown log levels."""
        with pytest.raises(ValidationError):
            LogSettings(level="LOUD")
