"""Notification configuration models.

Provides Pydantic models for:
- NotificationSettings: which backup events produce a notification
- WebhookConfig: optional webhook delivery (Slack-compatible payload)
- BackupNotification: a rendered notification ready for delivery

Usage:
    from harborsync.models.notification import NotificationSettings

    settings = NotificationSettings(notify_on_start=True)
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, HttpUrl


class NotificationKind(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


class WebhookConfig(BaseModel):
    """Configuration for webhook notifications.

    Attributes:
        enabled: Whether webhook delivery is enabled.
        url: Webhook URL (from environment variable).
        timeout_seconds: HTTP request timeout for webhook calls.
    """

    enabled: bool = Field(default=False, description="Enable webhook delivery")
    url: Optional[HttpUrl] = Field(
        default=None, description="Webhook URL from ${HARBOR_WEBHOOK_URL}"
    )
    timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="HTTP timeout for webhook requests",
    )


class NotificationSettings(BaseModel):
    """User toggles for backup notifications.

    Attributes:
        notify_on_start: Notify when a scheduled run starts.
        notify_on_completion: Notify with summary counts when a run ends.
        notify_on_error: Notify on run errors and skipped scheduled runs.
        webhook: Optional webhook delivery channel.
    """

    notify_on_start: bool = False
    notify_on_completion: bool = True
    notify_on_error: bool = True
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)


class BackupNotification(BaseModel):
    """Rendered notification"""

    kind: NotificationKind
    title: str
    body: str


class NotificationResult(BaseModel):
    """Result of a delivery attempt"""

    success: bool
    channel: str
    error: Optional[str] = None
