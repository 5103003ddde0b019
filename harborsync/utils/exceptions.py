"""Custom exceptions for the backup core.

This module defines the exception hierarchy used across HarborSync:
- Base exception for all backup errors
- Specific exceptions for checkpoints, resume validation, engines,
  configuration and notifications

All exceptions inherit from BackupError to allow catching every
backup-related error in a single except block when needed.
"""

from typing import List, Optional


class BackupError(Exception):
    """Base exception for all backup errors

    Use this to catch any error raised by the backup core:
    ```python
    try:
        await orchestrator.resume()
    except BackupError as e:
        logger.error("resume_failed", error=str(e))
    ```
    """

    pass


class CheckpointError(BackupError):
    """Checkpoint could not be persisted or decoded

    Raised internally by checkpoint stores and converted to a logged,
    non-fatal failure at the store boundary.
    """

    pass


class IncompatibleSessionError(BackupError):
    """Stored session does not match the current settings

    Raised when:
    - The destination (folder or server) changed since the pause
    - Transfer mode, media filter or sort order changed
    - The device identifier was regenerated

    The checkpoint is left intact; the user must reset explicitly or
    resume with the config change allowed.
    """

    def __init__(self, mismatched_fields: List[str], message: Optional[str] = None):
        self.mismatched_fields = list(mismatched_fields)
        super().__init__(
            message
            or "Stored session is incompatible with current settings: "
            + ", ".join(self.mismatched_fields)
        )


class TransferEngineError(BackupError):
    """Transfer engine failed as a whole

    Raised when:
    - Sources or destination cannot be opened
    - The engine is misconfigured

    Per-item failures are never raised; they are reported as events.
    """

    pass


class ConfigValidationError(BackupError):
    """Configuration validation failed"""

    pass


class NotificationError(BackupError):
    """Notification delivery failed

    Always caught inside the notification service; delivery is fail-safe.
    """

    pass
