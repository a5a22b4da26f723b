"""Reading and validating lidar firmware package files."""

from __future__ import annotations

import io
import logging
import os
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Union

log = logging.getLogger(__name__)

MD5_SIGNATURE_LENGTH = 16
ENL_FILE_VERSION_V2 = 0x02000000
ENL_FILE_VERSION_V3 = 0x03000000

GENERAL_TRY_COUNT_LIMIT = 10
GET_PROCESS_TRY_COUNT_LIMIT = 30
GET_PROGRESS_TRY_COUNT_LIMIT = 10

CHECKSUM_FIELD_SIZE = 128
HW_WHITELIST_SIZE = 128

_HEADER_STRUCT = struct.Struct("<IIIBBB2sBH128s128sQH")
HEADER_SIZE = _HEADER_STRUCT.size
TAIL_SIZE = MD5_SIGNATURE_LENGTH
MIN_FILE_SIZE = HEADER_SIZE + TAIL_SIZE + 1


class FirmwareError(Exception):
    """Raised when a firmware file cannot be opened or is malformed."""


class FirmwareType(IntEnum):
    MULTI_APP = 0
    APP = 1
    LOADER = 2
    UNKNOWN = 3


class FirmwareDeviceType(IntEnum):
    HUB = 0
    LIDAR_MID40 = 1
    LIDAR_TELE = 2
    LIDAR_HORIZON = 3
    LIDAR_HUB_V2 = 4
    LIDAR_MID_LITE = 5
    LIDAR_MID70 = 6
    LIDAR_AVIA = 7
    LIDAR_XXX1 = 8
    LIDAR_XXX2 = 9
    LIDAR_HAP = 10
    UNKNOWN = 11


class RequestUpgradeReturnCode(IntEnum):
    EVERYTHING_IS_OK = 0
    FIRMWARE_OUT_OF_LENGTH = 1
    SYSTEM_IS_NOT_READY = 2
    FIRMWARE_TYPE_MISMATCH = 3
    UPGRADE_STATE_MISMATCH = 4


def _make_crc_table() -> tuple:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ 0x8408 if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _make_crc_table()


def crc16_mcrf4xx(data: bytes) -> int:
    """Return the CRC-16/MCRF4XX checksum of ``data``."""
    crc = 0xFFFF
    for byte in data:
        crc = (crc >> 8) ^ _CRC_TABLE[(crc ^ byte) & 0xFF]
    return crc


@dataclass(frozen=True)
class FirmwareHeader:
    """The fixed-size header at the start of a firmware package."""

    file_version: int = 0
    firmware_version: int = 0
    firmware_length: int = 0
    firmware_type: int = 0
    device_type: int = 0
    encrypt_type: int = 0
    rsvd: bytes = bytes(2)
    checksum_type: int = 0
    checksum_length: int = 0
    checksum: bytes = field(default=bytes(CHECKSUM_FIELD_SIZE))
    hw_whitelist: bytes = field(default=bytes(HW_WHITELIST_SIZE))
    modify_time: int = 0
    header_checksum: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "FirmwareHeader":
        """Decode a header from the first ``HEADER_SIZE`` bytes of ``data``."""
        if len(data) < HEADER_SIZE:
            raise FirmwareError(
                f"firmware header needs {HEADER_SIZE} bytes, got {len(data)}"
            )
        return cls(*_HEADER_STRUCT.unpack_from(data))

    def to_bytes(self) -> bytes:
        """Encode the header in its packed little-endian wire form."""
        return _HEADER_STRUCT.pack(
            self.file_version,
            self.firmware_version,
            self.firmware_length,
            self.firmware_type,
            self.device_type,
            self.encrypt_type,
            self.rsvd,
            self.checksum_type,
            self.checksum_length,
            self.checksum,
            self.hw_whitelist,
            self.modify_time,
            self.header_checksum,
        )


class Firmware:
    """A firmware package: header, raw image data and trailing signature."""

    def __init__(self) -> None:
        self.header = FirmwareHeader()
        self.data = b""
        self.tail = bytes(TAIL_SIZE)
        self.file_size = 0
        self._file: Optional[io.BufferedReader] = None

    def __enter__(self) -> "Firmware":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self, path: Union[str, "os.PathLike[str]"]) -> None:
        """Open and validate the firmware file at ``path``.

        Raises ``FirmwareError`` if the file cannot be opened, is too small or
        its header checksum does not match.
        """
        self.close()
        try:
            handle = io.open(path, "rb")
        except OSError as exc:
            raise FirmwareError(f"Open {path} firmware file fail") from exc
        try:
            self.file_size = os.fstat(handle.fileno()).st_size
            if self.file_size < MIN_FILE_SIZE:
                raise FirmwareError("Firmware file size is too small")
            self._read_and_check(handle)
        except BaseException:
            handle.close()
            raise
        self._file = handle

    def _read_and_check(self, handle: io.BufferedReader) -> None:
        header = FirmwareHeader.from_bytes(handle.read(HEADER_SIZE))
        log.info("This firmware is used for device[%d].", header.device_type)
        raw = header.to_bytes()
        crc = crc16_mcrf4xx(raw[: HEADER_SIZE - 2])
        if crc != header.header_checksum:
            raise FirmwareError(
                f"Header checksum[{crc:04x} {header.header_checksum:04x}] error"
            )
        data = handle.read(header.firmware_length)
        tail = handle.read(TAIL_SIZE) if len(data) == header.firmware_length else b""
        if len(data) < header.firmware_length or len(tail) < TAIL_SIZE:
            log.warning("Read firmware fail[%d]", len(data) + len(tail))
        else:
            log.info("All firmware data have be read successfully.")
        self.header = header
        self.data = data
        self.tail = tail.ljust(TAIL_SIZE, b"\0")

    def close(self) -> None:
        """Close the underlying file; the loaded contents stay available."""
        if self._file is not None:
            self._file.close()
            self._file = None