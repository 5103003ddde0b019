"""Shared CLI utilities.

Provides common functionality for all CLI commands.
"""

import functools
from pathlib import Path
from typing import Callable, TypeVar

import structlog
import typer

from harborsync.engines import FolderMirrorEngine
from harborsync.models.config import DestinationMode, HarborConfig
from harborsync.observability.logging import configure_logging
from harborsync.orchestration.orchestrator import SessionOrchestrator
from harborsync.services.checkpoint_service import FileCheckpointStore
from harborsync.services.config_manager import ConfigManager
from harborsync.services.identity_service import DeviceIdentityStore
from harborsync.services.schedule_store import ScheduleStore
from harborsync.utils.exceptions import ConfigValidationError

# Configure structured logging
configure_logging(json_output=False)
logger = structlog.get_logger()

# Type variable for decorator
F = TypeVar("F", bound=Callable)


def load_config(config_path: Path) -> HarborConfig:
    """Load and validate configuration.

    Args:
        config_path: Path to configuration file.

    Returns:
        Validated HarborConfig.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    config_manager = ConfigManager(config_path=str(config_path))
    try:
        config = config_manager.load_config()
    except (FileNotFoundError, ConfigValidationError) as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    configure_logging(
        level=config.logging.level,
        json_output=config.logging.json_output,
    )
    return config


def build_orchestrator(config: HarborConfig) -> SessionOrchestrator:
    """Wire an orchestrator to the on-disk state for ``config``"""
    state_dir = config.state.state_dir
    state_dir.mkdir(parents=True, exist_ok=True)

    if config.backup.destination_mode == DestinationMode.SERVER:
        display_warning(
            "Server uploads are handled by an external engine; "
            "this build only copies to a folder destination."
        )

    return SessionOrchestrator(
        settings=config.backup,
        engine=FolderMirrorEngine(),
        checkpoint_store=FileCheckpointStore(state_dir),
        identity=DeviceIdentityStore(state_dir),
        state_settings=config.state,
        log_settings=config.logging,
    )


def schedule_store_for(config: HarborConfig) -> ScheduleStore:
    return ScheduleStore(config.state.state_dir)


def handle_errors(func: F) -> F:
    """Turn unexpected exceptions into a red "Error: ..." line and exit code 1.

    ``typer.Exit`` passes through so commands keep their own exit codes.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)


def display_log_line(line: str) -> None:
    """Echo a session log line, highlighting errors"""
    if line.startswith("ERROR"):
        display_error(line)
    else:
        typer.echo(line)
