"""Power source detection for the battery guard."""

import psutil
import structlog

logger = structlog.get_logger()


class PowerMonitor:
    """Reports whether the machine runs on external power.

    Machines without a battery (or where the state cannot be read) are
    treated as plugged in, so scheduled runs are never blocked by an
    unknown power state.
    """

    def is_on_external_power(self) -> bool:
        try:
            battery = psutil.sensors_battery()
        except Exception as e:
            logger.debug("power_state_unavailable", error=str(e))
            return True

        if battery is None or battery.power_plugged is None:
            return True
        return bool(battery.power_plugged)


class StaticPowerMonitor(PowerMonitor):
    """Fixed power state, settable at runtime"""

    def __init__(self, on_external_power: bool = True):
        self.on_external_power = on_external_power

    def is_on_external_power(self) -> bool:
        return self.on_external_power
