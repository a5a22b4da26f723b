"""Upgrading the firmware of several lidars from one firmware file."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Iterable, Optional, Union

from .defs import UpgradeState
from .firmware import Firmware, FirmwareError
from .upgrader import LidarUpgrader

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, UpgradeState], None]


class UpgradeManager:
    """Loads a firmware file and runs one upgrader per lidar handle."""

    def __init__(self, commands: Any) -> None:
        self.commands = commands
        self.firmware = Firmware()
        self._loaded = False
        self._callback: Optional[ProgressCallback] = None

    def set_firmware_path(self, path: Union[str, "os.PathLike[str]"]) -> None:
        """Open and validate the firmware file; raises ``FirmwareError`` on failure."""
        try:
            self.firmware.open(path)
        except FirmwareError:
            log.error("Open firmware_path fail: %s", path)
            raise
        self._loaded = True

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        """Set the callable told ``(handle, UpgradeState)`` as upgrades progress."""
        self._callback = callback

    def upgrade(self, handles: Iterable[int]) -> Dict[int, bool]:
        """Upgrade every lidar in ``handles`` and wait for all of them.

        Returns whether each handle's upgrade succeeded.  The firmware file is
        closed once all upgrades have started.  Raises ``FirmwareError`` if no
        firmware has been loaded.
        """
        if not self._loaded:
            raise FirmwareError("no firmware file has been opened")
        callback = self._callback
        upgraders = []
        for handle in handles:
            upgrader = LidarUpgrader(self.firmware, handle, self.commands)
            if callback is not None:
                upgrader.add_progress_observer(callback)
            upgraders.append(upgrader)

        for upgrader in upgraders:
            upgrader.start()

        self.close_firmware()
        return {upgrader.handle: upgrader.wait() for upgrader in upgraders}

    def close_firmware(self) -> None:
        """Close the firmware file; the loaded image stays in memory."""
        self.firmware.close()