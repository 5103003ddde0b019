"""Notification service for backup run events.

Provides async notification delivery with:
- Per-event toggles (start, completion, error/skip)
- A structlog channel that is always available
- An optional webhook channel (Slack-compatible ``{"text": ...}`` payload)
- Fail-safe error handling (never breaks a backup run)

Usage:
    from harborsync.services.notification_service import BackupNotifier
    from harborsync.models.notification import NotificationSettings

    notifier = BackupNotifier(NotificationSettings())
    await notifier.backup_completed(uploaded=3, skipped=2, errors=0)
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import aiohttp
import structlog
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from harborsync.models.notification import (
    BackupNotification,
    NotificationKind,
    NotificationResult,
    NotificationSettings,
)
from harborsync.utils.exceptions import NotificationError

logger = structlog.get_logger()


def completion_body(uploaded: int, skipped: int, errors: int) -> str:
    """Summary line for a finished run, e.g. '3 uploaded, 2 skipped'"""
    parts: List[str] = []
    if uploaded > 0:
        parts.append(f"{uploaded} uploaded")
    if skipped > 0:
        parts.append(f"{skipped} skipped")
    if errors > 0:
        parts.append(f"{errors} errors")
    return ", ".join(parts) if parts else "Backup finished."


class NotificationChannel(ABC):
    """Delivery target for rendered notifications"""

    name: str = "channel"

    @abstractmethod
    async def deliver(self, notification: BackupNotification) -> NotificationResult:
        """Deliver ``notification``.

        Implementations may raise; the notifier converts failures into an
        unsuccessful ``NotificationResult``.
        """


class LogChannel(NotificationChannel):
    """Writes notifications to the structured log"""

    name = "log"

    async def deliver(self, notification: BackupNotification) -> NotificationResult:
        logger.info(
            "notification",
            kind=notification.kind.value,
            title=notification.title,
            body=notification.body,
        )
        return NotificationResult(success=True, channel=self.name)


class WebhookChannel(NotificationChannel):
    """POSTs notifications to a webhook URL.

    Attributes:
        url: Webhook endpoint.
        timeout_seconds: Total HTTP timeout per attempt.
    """

    name = "webhook"

    def __init__(self, url: str, timeout_seconds: float = 10.0) -> None:
        """Initialize webhook channel.

        Args:
            url: Webhook endpoint.
            timeout_seconds: HTTP timeout for each attempt.
        """
        self.url = url
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def build_payload(notification: BackupNotification) -> dict:
        return {"text": f"*{notification.title}*\n{notification.body}"}

    async def deliver(self, notification: BackupNotification) -> NotificationResult:
        try:
            status = await self._post(self.build_payload(notification))
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error(
                "webhook_notification_error",
                error=str(cause),
                error_type=type(cause).__name__,
            )
            return NotificationResult(
                success=False, channel=self.name, error=f"HTTP error: {cause}"
            )
        except NotificationError as e:
            logger.warning("webhook_notification_failed", error=str(e))
            return NotificationResult(success=False, channel=self.name, error=str(e))

        logger.info("webhook_notification_sent", status=status)
        return NotificationResult(success=True, channel=self.name)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(aiohttp.ClientError),
    )
    async def _post(self, payload: dict) -> int:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                self.url,
                json=payload,
                headers={"Content-Type": "application/json"},
            ) as response:
                if response.status >= 500:
                    raise aiohttp.ClientError(f"Server error: {response.status}")
                if response.status >= 300:
                    text = await response.text()
                    raise NotificationError(f"HTTP {response.status}: {text[:100]}")
                return response.status


class BackupNotifier:
    """Builds backup notifications and fans them out to channels.

    Attributes:
        settings: Notification toggles.
        channels: Delivery channels, log channel first.
    """

    def __init__(
        self,
        settings: Optional[NotificationSettings] = None,
        channels: Optional[List[NotificationChannel]] = None,
    ) -> None:
        self.settings = settings or NotificationSettings()
        if channels is None:
            channels = [LogChannel()]
            webhook = self.settings.webhook
            if webhook.enabled and webhook.url:
                channels.append(
                    WebhookChannel(str(webhook.url), webhook.timeout_seconds)
                )
        self.channels = channels

    async def backup_started(self) -> List[NotificationResult]:
        if not self.settings.notify_on_start:
            return []
        return await self._send(
            BackupNotification(
                kind=NotificationKind.STARTED,
                title="Backup Started",
                body="Backup is now running.",
            )
        )

    async def backup_completed(
        self, uploaded: int, skipped: int, errors: int
    ) -> List[NotificationResult]:
        if not self.settings.notify_on_completion:
            return []
        return await self._send(
            BackupNotification(
                kind=NotificationKind.COMPLETED,
                title="Backup Complete",
                body=completion_body(uploaded, skipped, errors),
            )
        )

    async def backup_error(self, message: str) -> List[NotificationResult]:
        if not self.settings.notify_on_error:
            return []
        return await self._send(
            BackupNotification(
                kind=NotificationKind.ERROR, title="Backup Error", body=message
            )
        )

    async def backup_skipped(self, reason: str) -> List[NotificationResult]:
        # Skips are surfaced through the error toggle
        if not self.settings.notify_on_error:
            return []
        return await self._send(
            BackupNotification(
                kind=NotificationKind.SKIPPED,
                title="Scheduled Backup Skipped",
                body=reason,
            )
        )

    async def _send(self, notification: BackupNotification) -> List[NotificationResult]:
        results: List[NotificationResult] = []
        for channel in self.channels:
            try:
                results.append(await channel.deliver(notification))
            except Exception as e:
                # Notifications must never break a backup run
                logger.exception(
                    "notification_unexpected_error",
                    channel=channel.name,
                    error=str(e),
                )
                results.append(
                    NotificationResult(
                        success=False,
                        channel=channel.name,
                        error=f"Unexpected error: {e}",
                    )
                )
        return results
