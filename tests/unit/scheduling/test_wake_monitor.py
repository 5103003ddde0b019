"""Tests for WakeMonitor."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from harborsync.scheduling.wake import WakeMonitor
from harborsync.services.power_service import StaticPowerMonitor


class FakeClock:
    def __init__(self, value: float = 1000.0):
        self.value = value

    def __call__(self) -> float:
        return self.value


class TestWakeDetection:
    """Tests for sleep gap detection."""

    @pytest.mark.asyncio
    async def test_first_check_primes_clock(self):
        """Should never report a wake on the first poll."""
        on_wake = MagicMock()
        monitor = WakeMonitor(on_wake, clock=FakeClock())

        assert await monitor.check() is False
        on_wake.assert_not_called()

    @pytest.mark.asyncio
    async def test_normal_tick_is_not_wake(self):
        """Should ignore gaps within poll interval plus threshold."""
        clock = FakeClock()
        on_wake = MagicMock()
        monitor = WakeMonitor(on_wake, poll_interval=5.0, threshold=30.0, clock=clock)

        await monitor.check()
        clock.value += 35.0

        assert await monitor.check() is False
        on_wake.assert_not_called()

    @pytest.mark.asyncio
    async def test_large_gap_is_wake(self):
        """Should call the handler with the gap after a sleep."""
        clock = FakeClock()
        on_wake = MagicMock()
        monitor = WakeMonitor(on_wake, poll_interval=5.0, threshold=30.0, clock=clock)

        await monitor.check()
        clock.value += 600.0

        assert await monitor.check() is True
        on_wake.assert_called_once_with(600.0)

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self):
        """Should await coroutine handlers."""
        clock = FakeClock()
        on_wake = AsyncMock()
        monitor = WakeMonitor(on_wake, clock=clock)

        await monitor.check()
        clock.value += 3600.0
        await monitor.check()

        on_wake.assert_awaited_once_with(3600.0)

    @pytest.mark.asyncio
    async def test_wake_reported_once(self):
        """Should measure the next gap from the wake poll."""
        clock = FakeClock()
        on_wake = MagicMock()
        monitor = WakeMonitor(on_wake, clock=clock)

        await monitor.check()
        clock.value += 600.0
        await monitor.check()
        clock.value += 5.0
        await monitor.check()

        assert on_wake.call_count == 1


class TestPowerTracking:
    """Tests for power source change detection."""

    @pytest.mark.asyncio
    async def test_power_flip_reported(self):
        """Should call the power handler when the source changes."""
        power = StaticPowerMonitor(on_external_power=True)
        on_power_change = MagicMock()
        monitor = WakeMonitor(
            MagicMock(),
            power=power,
            on_power_change=on_power_change,
            clock=FakeClock(),
        )

        await monitor.check()
        power.on_external_power = False
        await monitor.check()

        on_power_change.assert_called_once_with(False)

    @pytest.mark.asyncio
    async def test_steady_power_not_reported(self):
        """Should stay quiet while the source is unchanged."""
        on_power_change = MagicMock()
        monitor = WakeMonitor(
            MagicMock(),
            power=StaticPowerMonitor(on_external_power=True),
            on_power_change=on_power_change,
            clock=FakeClock(),
        )

        await monitor.check()
        await monitor.check()

        on_power_change.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Should run and cancel the polling task."""
        monitor = WakeMonitor(MagicMock(), poll_interval=60.0)

        monitor.start()
        assert monitor._task is not None

        await monitor.stop()
        assert monitor._task is None
