"""HarborSync CLI Package.

Provides the command-line interface for resumable backups.

Usage:
    python -m harborsync.cli run --config config/harborsync.yaml
    python -m harborsync.cli run --dry-run
    python -m harborsync.cli resume
    python -m harborsync.cli status
    python -m harborsync.cli reset --wipe-manifest
    python -m harborsync.cli validate config/harborsync.yaml
    python -m harborsync.cli schedule show
    python -m harborsync.cli schedule set --weekly --at 02:00 --days mon,wed
    python -m harborsync.cli schedule start
"""

import typer

from harborsync.cli.run import reset_command, resume_command, run_command, status_command
from harborsync.cli.schedule import schedule_app
from harborsync.cli.validate import validate_command

# Create main app
app = typer.Typer(help="HarborSync: resumable backups with scheduling")

# Register individual commands
app.command(name="run")(run_command)
app.command(name="resume")(resume_command)
app.command(name="status")(status_command)
app.command(name="reset")(reset_command)
app.command(name="validate")(validate_command)

# Register sub-applications
app.add_typer(schedule_app, name="schedule")

__all__ = [
    "app",
    "run_command",
    "resume_command",
    "status_command",
    "reset_command",
    "validate_command",
    "schedule_app",
]
