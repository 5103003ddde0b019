"""Tests for backup notifications."""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from tenacity import wait_none

from harborsync.models.notification import (
    BackupNotification,
    NotificationKind,
    NotificationResult,
    NotificationSettings,
    WebhookConfig,
)
from harborsync.services.notification_service import (
    BackupNotifier,
    LogChannel,
    NotificationChannel,
    WebhookChannel,
    completion_body,
)


class RecordingChannel(NotificationChannel):
    """Channel that remembers what it was asked to deliver"""

    name = "recording"

    def __init__(self):
        self.sent = []

    async def deliver(self, notification):
        self.sent.append(notification)
        return NotificationResult(success=True, channel=self.name)


class ExplodingChannel(NotificationChannel):
    name = "exploding"

    async def deliver(self, notification):
        raise RuntimeError("boom")


def mock_http(status: int, text: str = ""):
    """Build a patched aiohttp.ClientSession returning ``status``"""
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestCompletionBody:
    """Tests for completion_body."""

    def test_counts(self):
        """Should list the non-zero counts."""
        assert completion_body(3, 2, 0) == "3 uploaded, 2 skipped"
        assert completion_body(0, 0, 1) == "1 errors"

    def test_nothing_happened(self):
        """Should fall back to a plain sentence."""
        assert completion_body(0, 0, 0) == "Backup finished."


class TestBackupNotifier:
    """Tests for BackupNotifier gating and fan-out."""

    @pytest.mark.asyncio
    async def test_start_off_by_default(self):
        """Should not announce starts unless enabled."""
        channel = RecordingChannel()
        notifier = BackupNotifier(NotificationSettings(), channels=[channel])

        assert await notifier.backup_started() == []
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_start_when_enabled(self):
        """Should send a Backup Started notification."""
        channel = RecordingChannel()
        notifier = BackupNotifier(
            NotificationSettings(notify_on_start=True), channels=[channel]
        )

        await notifier.backup_started()

        assert channel.sent[0].title == "Backup Started"
        assert channel.sent[0].kind == NotificationKind.STARTED

    @pytest.mark.asyncio
    async def test_completed(self):
        """Should summarize counts in the completion body."""
        channel = RecordingChannel()
        notifier = BackupNotifier(channels=[channel])

        results = await notifier.backup_completed(uploaded=3, skipped=2, errors=0)

        assert results[0].success is True
        assert channel.sent[0].title == "Backup Complete"
        assert channel.sent[0].body == "3 uploaded, 2 skipped"

    @pytest.mark.asyncio
    async def test_error_toggle_gates_skips(self):
        """Should suppress errors and skip notices when errors are off."""
        channel = RecordingChannel()
        notifier = BackupNotifier(
            NotificationSettings(notify_on_error=False), channels=[channel]
        )

        await notifier.backup_error("disk full")
        await notifier.backup_skipped("Machine is on battery power")

        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_skip_notice(self):
        """Should send a Scheduled Backup Skipped notification."""
        channel = RecordingChannel()
        notifier = BackupNotifier(channels=[channel])

        await notifier.backup_skipped("Machine is on battery power")

        assert channel.sent[0].title == "Scheduled Backup Skipped"
        assert channel.sent[0].body == "Machine is on battery power"

    @pytest.mark.asyncio
    async def test_channel_failure_is_contained(self):
        """Should report a failing channel and keep delivering to others."""
        channel = RecordingChannel()
        notifier = BackupNotifier(channels=[ExplodingChannel(), channel])

        results = await notifier.backup_error("disk full")

        assert results[0].success is False
        assert "boom" in results[0].error
        assert results[1].success is True

    def test_default_channels(self):
        """Should add the webhook only when enabled with a URL."""
        assert [type(c) for c in BackupNotifier().channels] == [LogChannel]

        settings = NotificationSettings(
            webhook=WebhookConfig(enabled=True, url="https://hooks.example/T1")
        )
        channels = BackupNotifier(settings).channels

        assert isinstance(channels[1], WebhookChannel)
        assert channels[1].url == "https://hooks.example/T1"


class TestWebhookChannel:
    """Tests for WebhookChannel."""

    def test_payload(self):
        """Should render a Slack-style text payload."""
        payload = WebhookChannel.build_payload(
            BackupNotification(
                kind=NotificationKind.ERROR, title="Backup Error", body="disk full"
            )
        )

        assert payload == {"text": "*Backup Error*\ndisk full"}

    @pytest.mark.asyncio
    async def test_success(self):
        """Should report success for a 2xx response."""
        channel = WebhookChannel("https://hooks.example/T1")
        session = mock_http(200)

        with patch("aiohttp.ClientSession", return_value=session):
            result = await channel.deliver(
                BackupNotification(
                    kind=NotificationKind.COMPLETED, title="Backup Complete", body="ok"
                )
            )

        assert result.success is True
        session.post.assert_called_once()
        assert session.post.call_args.kwargs["json"] == {
            "text": "*Backup Complete*\nok"
        }

    @pytest.mark.asyncio
    async def test_client_error_status_not_retried(self):
        """Should fail without retrying on a 4xx response."""
        channel = WebhookChannel("https://hooks.example/T1")
        session = mock_http(404, "no such hook")

        with patch("aiohttp.ClientSession", return_value=session):
            result = await channel.deliver(
                BackupNotification(kind=NotificationKind.ERROR, title="t", body="b")
            )

        assert result.success is False
        assert "HTTP 404" in result.error
        assert session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        """Should retry 5xx responses and then give up."""
        channel = WebhookChannel("https://hooks.example/T1")
        session = mock_http(503)

        with patch("aiohttp.ClientSession", return_value=session), patch.object(
            WebhookChannel._post.retry, "wait", wait_none()
        ):
            result = await channel.deliver(
                BackupNotification(kind=NotificationKind.ERROR, title="t", body="b")
            )

        assert result.success is False
        assert "HTTP error" in result.error
        assert session.post.call_count == 3

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Should report connection failures."""
        channel = WebhookChannel("https://hooks.example/T1")
        session = mock_http(200)
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch("aiohttp.ClientSession", return_value=session), patch.object(
            WebhookChannel._post.retry, "wait", wait_none()
        ):
            result = await channel.deliver(
                BackupNotification(kind=NotificationKind.ERROR, title="t", body="b")
            )

        assert result.success is False
        assert "refused" in result.error
