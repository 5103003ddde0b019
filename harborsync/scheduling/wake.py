"""Sleep/wake and power-source detection by polling.

A suspended machine stops the event loop, so after resume the wall clock
has jumped by far more than the poll interval. That gap is the wake
signal. The same loop notices power-source flips.
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from harborsync.services.power_service import PowerMonitor

logger = structlog.get_logger()

WakeHandler = Callable[[float], Union[None, Awaitable[Any]]]
PowerHandler = Callable[[bool], Any]


class WakeMonitor:
    """Polls the wall clock (and optionally the power source).

    Args:
        on_wake: Called with the observed gap in seconds after a sleep
        poll_interval: Seconds between polls
        threshold: Extra seconds beyond ``poll_interval`` that count as sleep
        power: Power monitor to watch; None disables power tracking
        on_power_change: Called with the new on-external-power state
        clock: Wall clock in seconds
    """

    def __init__(
        self,
        on_wake: WakeHandler,
        poll_interval: float = 5.0,
        threshold: float = 30.0,
        power: Optional[PowerMonitor] = None,
        on_power_change: Optional[PowerHandler] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.on_wake = on_wake
        self.poll_interval = poll_interval
        self.threshold = threshold
        self.power = power
        self.on_power_change = on_power_change
        self.clock = clock

        self._last_tick: Optional[float] = None
        self._last_power: Optional[bool] = None
        self._task: Optional["asyncio.Task[None]"] = None

    async def check(self) -> bool:
        """One poll step. Returns True if a wake was detected."""
        now = self.clock()
        woke = False

        if self._last_tick is not None:
            gap = now - self._last_tick
            if gap > self.poll_interval + self.threshold:
                logger.info("system_resumed", gap_seconds=round(gap, 1))
                woke = True
                await _call(self.on_wake, gap)
        self._last_tick = now

        if self.power is not None:
            on_ac = self.power.is_on_external_power()
            if self._last_power is not None and on_ac != self._last_power:
                if self.on_power_change is not None:
                    await _call(self.on_power_change, on_ac)
            self._last_power = on_ac

        return woke

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._last_tick = self.clock()
            self._task = asyncio.get_running_loop().create_task(self._loop())
            logger.info("wake_monitor_started", poll_interval=self.poll_interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("wake_monitor_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.check()
            except Exception as e:
                logger.error("wake_monitor_error", error=str(e))


async def _call(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result
