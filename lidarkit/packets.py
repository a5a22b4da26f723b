"""Decoding the packets a lidar sends: point cloud / IMU data and commands."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Union

from .defs import PointDataType

_ETHERNET_HEADER = struct.Struct("<BHHHHBBB12sIQ")
_CMD_HEADER = struct.Struct("<BBHIHBB6sHI")
_IMU_POINT = struct.Struct("<ffffff")
_HIGH_POINT = struct.Struct("<iiiBB")
_LOW_POINT = struct.Struct("<hhhBB")
_SPHERICAL_POINT = struct.Struct("<IHHBB")

ETHERNET_HEADER_SIZE = _ETHERNET_HEADER.size
CMD_HEADER_SIZE = _CMD_HEADER.size


def _check_length(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass(frozen=True)
class EthernetPacket:
    """A point cloud or IMU data packet; ``time_interval`` is in 0.1 us."""

    version: int = 0
    length: int = 0
    time_interval: int = 0
    dot_num: int = 0
    udp_cnt: int = 0
    frame_cnt: int = 0
    data_type: int = 0
    time_type: int = 0
    rsvd: bytes = bytes(12)
    crc32: int = 0
    timestamp: int = 0
    data: bytes = b""

    @classmethod
    def from_bytes(cls, data: bytes) -> "EthernetPacket":
        """Decode a packet; everything after the header becomes ``data``."""
        _check_length(data, ETHERNET_HEADER_SIZE, "ethernet packet")
        fields = _ETHERNET_HEADER.unpack_from(data)
        return cls(*fields, data=bytes(data[ETHERNET_HEADER_SIZE:]))

    def to_bytes(self) -> bytes:
        return (
            _ETHERNET_HEADER.pack(
                self.version,
                self.length,
                self.time_interval,
                self.dot_num,
                self.udp_cnt,
                self.frame_cnt,
                self.data_type,
                self.time_type,
                self.rsvd,
                self.crc32,
                self.timestamp,
            )
            + self.data
        )


@dataclass(frozen=True)
class CmdPacket:
    """A command packet exchanged with a lidar."""

    sof: int = 0
    version: int = 0
    length: int = 0
    seq_num: int = 0
    cmd_id: int = 0
    cmd_type: int = 0
    sender_type: int = 0
    rsvd: bytes = bytes(6)
    crc16_h: int = 0
    crc32_d: int = 0
    data: bytes = b""

    @classmethod
    def from_bytes(cls, data: bytes) -> "CmdPacket":
        """Decode a packet; everything after the header becomes ``data``."""
        _check_length(data, CMD_HEADER_SIZE, "command packet")
        fields = _CMD_HEADER.unpack_from(data)
        return cls(*fields, data=bytes(data[CMD_HEADER_SIZE:]))

    def to_bytes(self) -> bytes:
        return (
            _CMD_HEADER.pack(
                self.sof,
                self.version,
                self.length,
                self.seq_num,
                self.cmd_id,
                self.cmd_type,
                self.sender_type,
                self.rsvd,
                self.crc16_h,
                self.crc32_d,
            )
            + self.data
        )


@dataclass(frozen=True)
class ImuRawPoint:
    gyro_x: float
    gyro_y: float
    gyro_z: float
    acc_x: float
    acc_y: float
    acc_z: float

    @classmethod
    def from_bytes(cls, data: bytes) -> "ImuRawPoint":
        _check_length(data, _IMU_POINT.size, "IMU point")
        return cls(*_IMU_POINT.unpack_from(data))


@dataclass(frozen=True)
class CartesianHighPoint:
    """A point with coordinates in millimetres."""

    x: int
    y: int
    z: int
    reflectivity: int
    tag: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "CartesianHighPoint":
        _check_length(data, _HIGH_POINT.size, "cartesian high point")
        return cls(*_HIGH_POINT.unpack_from(data))


@dataclass(frozen=True)
class CartesianLowPoint:
    """A point with coordinates in centimetres."""

    x: int
    y: int
    z: int
    reflectivity: int
    tag: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "CartesianLowPoint":
        _check_length(data, _LOW_POINT.size, "cartesian low point")
        return cls(*_LOW_POINT.unpack_from(data))


@dataclass(frozen=True)
class SphericalPoint:
    depth: int
    theta: int
    phi: int
    reflectivity: int
    tag: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "SphericalPoint":
        _check_length(data, _SPHERICAL_POINT.size, "spherical point")
        return cls(*_SPHERICAL_POINT.unpack_from(data))


_POINT_LAYOUTS = {
    PointDataType.IMU: (_IMU_POINT, ImuRawPoint),
    PointDataType.CARTESIAN_HIGH: (_HIGH_POINT, CartesianHighPoint),
    PointDataType.CARTESIAN_LOW: (_LOW_POINT, CartesianLowPoint),
    PointDataType.SPHERICAL: (_SPHERICAL_POINT, SphericalPoint),
}

Point = Union[ImuRawPoint, CartesianHighPoint, CartesianLowPoint, SphericalPoint]


def iter_points(packet: EthernetPacket) -> Iterator[Point]:
    """Yield the ``dot_num`` points carried by ``packet``.

    Raises ``ValueError`` for an unknown data type or truncated data.
    """
    try:
        layout, point_cls = _POINT_LAYOUTS[PointDataType(packet.data_type)]
    except ValueError:
        raise ValueError(f"unknown point data type: {packet.data_type}") from None
    needed = packet.dot_num * layout.size
    if len(packet.data) < needed:
        raise ValueError(
            f"packet holds {len(packet.data)} bytes, {packet.dot_num} points need {needed}"
        )
    for fields in layout.iter_unpack(packet.data[:needed]):
        yield point_cls(*fields)