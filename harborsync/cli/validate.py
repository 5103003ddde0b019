"""Validate command for configuration files.

Validates configuration file syntax and semantics.
"""

from pathlib import Path

import typer

from harborsync.cli.utils import display_error, display_success, display_warning, handle_errors
from harborsync.services.config_manager import DEFAULT_CONFIG_PATH, ConfigManager


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(
        Path(DEFAULT_CONFIG_PATH), help="Config file to validate"
    ),
):
    """Validate configuration file syntax and semantics."""
    try:
        manager = ConfigManager(config_path=str(config_path))
        config = manager.load_config()
    except Exception as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)

    display_success("Configuration is valid! ✅")

    for source in config.backup.sources:
        if not source.is_dir():
            display_warning(f"Source folder does not exist: {source}")
    for blocker in config.backup.start_blockers():
        display_warning(f"Runs cannot start yet: {blocker}")
