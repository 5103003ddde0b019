"""
Stable device identifier used for destination-side deduplication.

The remote destination keys items by (device id, item id). Regenerating
the device id makes every item look new to the server, which is how a
reset forces a full resync.
"""

import threading
import uuid
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger()

DEVICE_ID_FILENAME = "device_id"


class DeviceIdentityStore:
    """Device id persisted as a single line in ``<state_dir>/device_id``"""

    def __init__(self, state_dir: Path):
        self.path = Path(state_dir) / DEVICE_ID_FILENAME
        self._lock = threading.Lock()
        self._cached: Optional[str] = None

    def get_or_create(self) -> str:
        """Return the device id, creating one on first use"""
        with self._lock:
            if self._cached:
                return self._cached

            if self.path.exists():
                try:
                    value = self.path.read_text().strip()
                    if value:
                        self._cached = value
                        return value
                except OSError as e:
                    logger.warning("device_id_read_failed", error=str(e))

            return self._write_new()

    def regenerate(self) -> str:
        """Replace the device id with a fresh one"""
        with self._lock:
            old = self._cached
            new = self._write_new()
            logger.info("device_id_regenerated", previous=old, device_id=new)
            return new

    def _write_new(self) -> str:
        value = str(uuid.uuid4())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp = self.path.with_suffix(".tmp")
            temp.write_text(value + "\n")
            temp.replace(self.path)
        except OSError as e:
            # Still usable for this process, just not stable across restarts
            logger.error("device_id_write_failed", path=str(self.path), error=str(e))
        self._cached = value
        return value
