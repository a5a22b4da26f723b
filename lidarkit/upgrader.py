"""Firmware upgrade state machine for a single lidar.

The upgrader walks a lidar through the upgrade sequence: request the
upgrade, transfer the firmware image in chunks, complete the transfer,
poll the upgrade progress and finally reboot the device.  Commands are
sent through a ``commands`` object.  It answers each request later by
calling the callback it was given with ``(status, response)``.  Responses
carry a ``ret_code`` attribute, and progress responses also carry a
``progress`` attribute.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from .defs import FsmEvent, FsmState, LidarStatusError, Status, UpgradeState
from .firmware import (
    ENL_FILE_VERSION_V3,
    GENERAL_TRY_COUNT_LIMIT,
    GET_PROCESS_TRY_COUNT_LIMIT,
    Firmware,
    RequestUpgradeReturnCode,
)

log = logging.getLogger(__name__)

ERASE_FIRMWARE = 0x34
DEFAULT_READ_LENGTH = 1024

ResponseCallback = Callable[[int, Any], None]
ProgressObserver = Callable[[int, UpgradeState], None]


class _UpgradeCommands(Protocol):
    def start_upgrade(self, handle: int, callback: ResponseCallback, **request: Any) -> Any: ...

    def xfer_firmware(self, handle: int, callback: ResponseCallback, **request: Any) -> Any: ...

    def complete_xfer_firmware(self, handle: int, callback: ResponseCallback, **request: Any) -> Any: ...

    def get_upgrade_progress(self, handle: int, callback: ResponseCallback) -> Any: ...

    def request_reboot(self, handle: int, callback: ResponseCallback) -> Any: ...


# (current state, event) -> (handler method name or None, next state)
_TRANSITIONS: Dict[Tuple[FsmState, FsmEvent], Tuple[Optional[str], FsmState]] = {
    (FsmState.IDLE, FsmEvent.REQUEST_UPGRADE): ("start_upgrade", FsmState.REQUEST),
    (FsmState.REQUEST, FsmEvent.REQUEST_UPGRADE): ("start_upgrade", FsmState.REQUEST),
    (FsmState.REQUEST, FsmEvent.XFER_FIRMWARE): ("xfer_firmware", FsmState.XFER_FIRMWARE),
    (FsmState.XFER_FIRMWARE, FsmEvent.XFER_FIRMWARE): ("xfer_firmware", FsmState.XFER_FIRMWARE),
    (FsmState.XFER_FIRMWARE, FsmEvent.COMPLETE_XFER_FIRMWARE): (
        "complete_xfer_firmware",
        FsmState.COMPLETE_XFER_FIRMWARE,
    ),
    (FsmState.COMPLETE_XFER_FIRMWARE, FsmEvent.COMPLETE_XFER_FIRMWARE): (
        "complete_xfer_firmware",
        FsmState.COMPLETE_XFER_FIRMWARE,
    ),
    (FsmState.COMPLETE_XFER_FIRMWARE, FsmEvent.GET_UPGRADE_PROGRESS): (
        "get_upgrade_progress",
        FsmState.GET_UPGRADE_PROGRESS,
    ),
    (FsmState.GET_UPGRADE_PROGRESS, FsmEvent.GET_UPGRADE_PROGRESS): (
        "get_upgrade_progress",
        FsmState.GET_UPGRADE_PROGRESS,
    ),
    (FsmState.GET_UPGRADE_PROGRESS, FsmEvent.COMPLETE): ("upgrade_complete", FsmState.COMPLETE),
    (FsmState.COMPLETE, FsmEvent.COMPLETE): ("upgrade_complete", FsmState.COMPLETE),
    (FsmState.COMPLETE, FsmEvent.REINIT): (None, FsmState.IDLE),
}


def _succeeded(status: int) -> bool:
    return status == Status.SUCCESS


class LidarUpgrader:
    """Drives the firmware upgrade of one lidar identified by ``handle``."""

    xfer_delay = 0.005
    erase_retry_delay = 1.0

    def __init__(self, firmware: Firmware, handle: int, commands: _UpgradeCommands) -> None:
        self.firmware = firmware
        self.handle = handle
        self.commands = commands
        self.read_offset = 0
        self.read_length = DEFAULT_READ_LENGTH
        self.state = FsmState.IDLE
        self.upgrade_error = 0
        self.progress = 0
        self.try_count = 0
        self._observer: Optional[ProgressObserver] = None
        self._thread: Optional[threading.Thread] = None

    def add_progress_observer(self, observer: ProgressObserver) -> None:
        """Set the callable told ``(handle, UpgradeState)`` after every event."""
        self._observer = observer

    def start(self) -> None:
        """Begin the upgrade on a background thread."""
        self._thread = threading.Thread(
            target=self.fsm_event, args=(FsmEvent.REQUEST_UPGRADE, 10), daemon=True
        )
        self._thread.start()

    def wait(self, poll_interval: float = 0.1) -> bool:
        """Block until the upgrade ends; return True on success, False on error."""
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        while True:
            if self.is_error():
                log.error("lidar[%d] upgrade error, try again please!", self.handle)
                return False
            if self.is_complete():
                log.info("lidar[%d] upgrade successfully.", self.handle)
                return True
            time.sleep(poll_interval)

    def fsm_event(self, event: FsmEvent, progress: int) -> None:
        """Feed ``event`` to the state machine and report ``progress``."""
        event = FsmEvent(event)
        if event in (FsmEvent.TIMEOUT, FsmEvent.ERR):
            self.change_state(event)
        log.debug("lidar[%d] state %s | event %s", self.handle, self.state.name, event.name)

        handler_name: Optional[str] = None
        transition = _TRANSITIONS.get((self.state, event))
        if transition is not None:
            handler_name, self.state = transition
            log.debug("lidar[%d] new state %s | event %s", self.handle, self.state.name, event.name)

        if handler_name is not None:
            try:
                getattr(self, handler_name)()
            except LidarStatusError as exc:
                log.warning("lidar[%d] %s failed: %s", self.handle, handler_name, exc)

        if self._observer is not None:
            self._observer(self.handle, UpgradeState(event, progress))

    def change_state(self, event: FsmEvent) -> None:
        """Force the state to the one numbered like ``event``, if it is defined."""
        if event < FsmEvent.UNDEF:
            self.state = FsmState(int(event))

    def is_complete(self) -> bool:
        return self.state == FsmState.IDLE

    def is_error(self) -> bool:
        return self.state in (FsmState.TIMEOUT, FsmState.ERR)

    def start_upgrade(self) -> Any:
        """Send the upgrade request describing the firmware image."""
        self.read_offset = 0
        self.upgrade_error = 0
        self.progress = 0
        header = self.firmware.header
        request: Dict[str, Any] = {
            "firmware_type": header.firmware_type,
            "firmware_length": header.firmware_length,
            "encrypt_type": header.encrypt_type,
            "dev_type": header.device_type,
        }
        if header.file_version == ENL_FILE_VERSION_V3:
            request["firmware_version"] = header.firmware_version
            request["firmware_buildtime"] = header.modify_time
            request["hw_whitelist"] = header.hw_whitelist
        log.info("Start upgrade, lidar[%d] device type [%d]", self.handle, header.device_type)
        return self.commands.start_upgrade(self.handle, self.on_start_upgrade_response, **request)

    def xfer_firmware(self) -> Any:
        """Send the next chunk of the firmware image."""
        header = self.firmware.header
        firmware_length = header.firmware_length
        if self.read_offset >= firmware_length:
            raise LidarStatusError(
                Status.FAILURE,
                f"read offset {self.read_offset} is past firmware length {firmware_length}",
            )
        read_length = min(self.read_length, firmware_length - self.read_offset)
        data = bytes(self.firmware.data[self.read_offset : self.read_offset + read_length])
        if self.xfer_delay:
            time.sleep(self.xfer_delay)
        log.debug("lidar[%d] xfer firmware read offset %d", self.handle, self.read_offset)
        return self.commands.xfer_firmware(
            self.handle,
            self.on_xfer_response,
            offset=self.read_offset,
            length=read_length,
            encrypt_type=header.encrypt_type,
            data=data,
        )

    def complete_xfer_firmware(self) -> Any:
        """Tell the lidar the transfer is done, passing the image checksum."""
        header = self.firmware.header
        return self.commands.complete_xfer_firmware(
            self.handle,
            self.on_complete_xfer_response,
            checksum_type=header.checksum_type,
            checksum_length=header.checksum_length,
            checksum=bytes(header.checksum[: header.checksum_length]),
        )

    def get_upgrade_progress(self) -> Any:
        return self.commands.get_upgrade_progress(self.handle, self.on_progress_response)

    def upgrade_complete(self) -> Any:
        return self.commands.request_reboot(self.handle, self.on_reboot_response)

    def _retry(self, limit: int, event: FsmEvent, progress: int, final: FsmEvent) -> None:
        self.try_count += 1
        if self.try_count < limit:
            self.fsm_event(event, progress)
        else:
            self.try_count = 0
            log.error("lidar[%d] %s exceed limit!", self.handle, event.name)
            self.fsm_event(final, 100)

    def on_start_upgrade_response(self, status: int, response: Any) -> None:
        if not _succeeded(status):
            log.warning("lidar[%d] start upgrade status %s, try again", self.handle, status)
            self._retry(GENERAL_TRY_COUNT_LIMIT, FsmEvent.REQUEST_UPGRADE, 10, FsmEvent.ERR)
            return
        self.try_count = 0
        ret_code = response.ret_code
        if not ret_code:
            self.fsm_event(FsmEvent.XFER_FIRMWARE, 20)
        elif ret_code == RequestUpgradeReturnCode.SYSTEM_IS_NOT_READY:
            log.info("lidar[%d] is busy, try again", self.handle)
            self.fsm_event(FsmEvent.REQUEST_UPGRADE, 10)
        elif ret_code == ERASE_FIRMWARE:
            if self.erase_retry_delay:
                time.sleep(self.erase_retry_delay)
            log.info("Start upgrade, erase lidar[%d] firmware", self.handle)
            self.fsm_event(FsmEvent.REQUEST_UPGRADE, 10)
        else:
            log.error("Start upgrade failed, lidar[%d] ret_code[%d]", self.handle, ret_code)
            self.fsm_event(FsmEvent.ERR, 100)

    def on_xfer_response(self, status: int, response: Any) -> None:
        if not _succeeded(status):
            log.warning("lidar[%d] xfer firmware timeout, try_count %d", self.handle, self.try_count)
            self._retry(GENERAL_TRY_COUNT_LIMIT, FsmEvent.XFER_FIRMWARE, 20, FsmEvent.ERR)
            return
        self.try_count = 0
        if response.ret_code:
            log.error("lidar[%d] xfer firmware fail[%d]", self.handle, response.ret_code)
            self.fsm_event(FsmEvent.ERR, 100)
            return
        self.read_offset += self.read_length
        if self.read_offset < self.firmware.header.firmware_length:
            self.fsm_event(FsmEvent.XFER_FIRMWARE, 20)
        else:
            log.info("Xfer firmware succ, lidar[%d] last offset[%d]", self.handle, self.read_offset)
            self.fsm_event(FsmEvent.COMPLETE_XFER_FIRMWARE, 40)

    def on_complete_xfer_response(self, status: int, response: Any) -> None:
        if not _succeeded(status):
            log.warning("lidar[%d] complete xfer timeout, try_count %d", self.handle, self.try_count)
            self._retry(GENERAL_TRY_COUNT_LIMIT, FsmEvent.COMPLETE_XFER_FIRMWARE, 50, FsmEvent.ERR)
            return
        self.try_count = 0
        if response.ret_code:
            log.error("Complete xfer failed, lidar[%d] ret_code %d", self.handle, response.ret_code)
            self.fsm_event(FsmEvent.ERR, 100)
        else:
            self.fsm_event(FsmEvent.GET_UPGRADE_PROGRESS, 50)

    def on_progress_response(self, status: int, response: Any) -> None:
        if not _succeeded(status):
            self._retry(
                GET_PROCESS_TRY_COUNT_LIMIT,
                FsmEvent.GET_UPGRADE_PROGRESS,
                self.progress // 2 + 50,
                FsmEvent.ERR,
            )
            return
        self.try_count = 0
        if response.ret_code:
            log.error("Get progress failed, lidar[%d] ret_code %d", self.handle, response.ret_code)
            self.fsm_event(FsmEvent.ERR, 100)
        elif response.progress < 100:
            log.info("lidar[%d] get progress[%d]", self.handle, response.progress)
            self.fsm_event(FsmEvent.GET_UPGRADE_PROGRESS, response.progress // 2 + 50)
        else:
            self.fsm_event(FsmEvent.COMPLETE, 100)

    def on_reboot_response(self, status: int, response: Any) -> None:
        if not _succeeded(status):
            log.warning("lidar[%d] reboot device timeout, try_count %d", self.handle, self.try_count)
            self._retry(GENERAL_TRY_COUNT_LIMIT, FsmEvent.COMPLETE, 100, FsmEvent.REINIT)
            return
        self.try_count = 0
        if response.ret_code:
            log.error("lidar[%d] reboot device fail, ret_code %d", self.handle, response.ret_code)
            self.fsm_event(FsmEvent.ERR, 100)
        else:
            log.info("lidar[%d] upgrade complete succ.", self.handle)
            self.fsm_event(FsmEvent.REINIT, 100)