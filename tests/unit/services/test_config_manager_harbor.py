"""Tests for ConfigManager."""

from pathlib import Path

import pytest

from harborsync.models.schedule import WeeklyPolicy
from harborsync.services.config_manager import ConfigManager
from harborsync.utils.exceptions import ConfigValidationError


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "harborsync.yaml"
    path.write_text(text)
    return path


class TestLoadConfig:
    """Tests for ConfigManager.load_config."""

    def test_missing_file(self, tmp_path):
        """Should raise FileNotFoundError for a missing file."""
        manager = ConfigManager(config_path=str(tmp_path / "nope.yaml"))

        with pytest.raises(FileNotFoundError):
            manager.load_config()

    def test_empty_file_gives_defaults(self, tmp_path):
        """Should accept an empty file and use defaults."""
        manager = ConfigManager(
            config_path=str(write_config(tmp_path, "")), project_root=tmp_path
        )

        config = manager.load_config()

        assert config.backup.sources == []
        assert config.schedule.type == "disabled"
        assert config.state.state_dir == tmp_path / "state"

    def test_env_substitution(self, tmp_path, monkeypatch):
        """Should substitute ${VAR} from the environment."""
        monkeypatch.setenv("HARBOR_TEST_DEST", str(tmp_path / "dest"))
        path = write_config(
            tmp_path,
            "backup:\n  folder_destination: ${HARBOR_TEST_DEST}\n",
        )

        config = ConfigManager(config_path=str(path)).load_config()

        assert config.backup.folder_destination == tmp_path / "dest"

    def test_unresolved_variables_are_dropped(self, tmp_path, monkeypatch):
        """Should treat an unset ${VAR} as a missing value."""
        monkeypatch.delenv("HARBOR_TEST_UNSET_KEY", raising=False)
        path = write_config(
            tmp_path,
            "backup:\n  api_key: ${HARBOR_TEST_UNSET_KEY}\n",
        )

        config = ConfigManager(config_path=str(path)).load_config()

        assert config.backup.api_key is None

    def test_relative_paths_resolved_against_project_root(self, tmp_path):
        """Should anchor relative paths at the project root."""
        path = write_config(
            tmp_path,
            "backup:\n"
            "  sources: [photos]\n"
            "  folder_destination: out\n"
            "state:\n"
            "  state_dir: .state\n",
        )

        config = ConfigManager(config_path=str(path), project_root=tmp_path).load_config()

        assert config.backup.sources == [tmp_path / "photos"]
        assert config.backup.folder_destination == tmp_path / "out"
        assert config.state.state_dir == tmp_path / ".state"

    def test_schedule_policy_parsed(self, tmp_path):
        """Should build the policy named by the type field."""
        path = write_config(
            tmp_path,
            "schedule:\n  type: weekly\n  hour: 3\n  days: [sat, sun]\n",
        )

        config = ConfigManager(config_path=str(path)).load_config()

        assert isinstance(config.schedule, WeeklyPolicy)
        assert config.schedule.hour == 3

    def test_invalid_values(self, tmp_path):
        """Should wrap pydantic errors in ConfigValidationError."""
        path = write_config(tmp_path, "backup:\n  backup_mode: sometimes\n")

        with pytest.raises(ConfigValidationError, match="Invalid configuration"):
            ConfigManager(config_path=str(path)).load_config()

    def test_non_mapping_root(self, tmp_path):
        """Should reject a YAML list at the root."""
        path = write_config(tmp_path, "- a\n- b\n")

        with pytest.raises(ConfigValidationError):
            ConfigManager(config_path=str(path)).load_config()

