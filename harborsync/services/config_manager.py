import os
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from harborsync.models.config import HarborConfig
from harborsync.utils.exceptions import ConfigValidationError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = "config/harborsync.yaml"


class ConfigManager:
    """Loads the YAML configuration and resolves state paths"""

    def __init__(
        self,
        config_path: str = DEFAULT_CONFIG_PATH,
        project_root: Optional[Path] = None,
    ):
        self.config_path = Path(config_path)
        self.env_loaded = False
        self._config: Optional[HarborConfig] = None
        self.project_root = project_root or Path.cwd()

    def load_config(self) -> HarborConfig:
        """Load and validate configuration"""
        if self._config:
            return self._config

        # 1. Load environment
        if not self.env_loaded:  # pragma: no cover
            load_dotenv()
            self.env_loaded = True

        # 2. Check file existence
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        # 3. Read YAML
        try:
            with open(self.config_path) as f:
                raw_content = f.read()
        except Exception as e:
            raise ConfigValidationError(f"Failed to read config file: {e}")

        # 4. Substitute env vars
        try:
            template = Template(raw_content)
            substituted_content = template.safe_substitute(os.environ)
            config_data = yaml.safe_load(substituted_content) or {}
        except Exception as e:
            raise ConfigValidationError(
                f"Failed to parse YAML or substitute variables: {e}"
            )

        if not isinstance(config_data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        # 5. Validate with Pydantic
        try:
            config = HarborConfig(**_drop_unresolved(config_data))
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid configuration: {e}")

        self._config = self._resolve_paths(config)
        logger.info(
            "config_loaded",
            path=str(self.config_path),
            sources=len(self._config.backup.sources),
            schedule=self._config.schedule.type,
        )
        return self._config

    def _resolve_paths(self, config: HarborConfig) -> HarborConfig:
        """Make relative paths relative to the project root"""

        def resolve(path: Optional[Path]) -> Optional[Path]:
            if path is None:
                return None
            path = path.expanduser()
            return path if path.is_absolute() else self.project_root / path

        backup = config.backup.model_copy(
            update={
                "sources": [resolve(p) for p in config.backup.sources],
                "folder_destination": resolve(config.backup.folder_destination),
            }
        )
        state = config.state.model_copy(
            update={
                "state_dir": resolve(config.state.state_dir),
                "temp_dir": resolve(config.state.temp_dir),
            }
        )
        return config.model_copy(update={"backup": backup, "state": state})


def _drop_unresolved(data: Any) -> Any:
    """Treat ``${VAR}`` placeholders left by safe_substitute as unset"""
    if isinstance(data, dict):
        result: Dict[str, Any] = {}
        for key, value in data.items():
            cleaned = _drop_unresolved(value)
            if cleaned is not None:
                result[key] = cleaned
        return result
    if isinstance(data, list):
        return [_drop_unresolved(v) for v in data]
    if isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        return None
    return data
