"""Consistency checks on the lidar configuration before the SDK starts.

Lidar addresses must be unique and multicast addresses must lie in the
multicast range.  A Mid-360 listens on fixed ports, so any other port in
its configuration is replaced with the fixed one.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, List, Optional, Sequence

from .config import LidarConfig, LidarNetInfo
from .defs import DeviceType

log = logging.getLogger(__name__)

MID360_CMD_PORT = 56100
MID360_PUSH_MSG_PORT = 56200
MID360_POINT_CLOUD_PORT = 56300
MID360_IMU_DATA_PORT = 56400
MID360_LOG_PORT = 56500

_MID360_PORTS = (
    ("cmd_data_port", MID360_CMD_PORT),
    ("push_msg_port", MID360_PUSH_MSG_PORT),
    ("point_data_port", MID360_POINT_CLOUD_PORT),
    ("imu_data_port", MID360_IMU_DATA_PORT),
    ("log_data_port", MID360_LOG_PORT),
)

_MULTICAST_LOW = 0xE0000000
_MULTICAST_HIGH = 0xEFFFFFFF


class ParamsCheckError(ValueError):
    """Raised when the lidar configuration is inconsistent."""


def _ip_value(address: str) -> Optional[int]:
    try:
        return int(ipaddress.IPv4Address(address))
    except ValueError:
        return None


def is_multicast_address(address: str) -> bool:
    """Return whether ``address`` is accepted as a multicast address.

    The accepted range is above 224.0.0.0 up to 239.255.255.255; malformed
    addresses are not accepted.
    """
    value = _ip_value(address)
    return value is not None and _MULTICAST_LOW < value <= _MULTICAST_HIGH


def check_lidar_ips(
    lidars: Iterable[LidarConfig], custom_lidars: Iterable[LidarConfig]
) -> None:
    """Raise ``ParamsCheckError`` if a lidar address is used twice.

    Broadcast-found lidars may leave the address empty; custom lidars may not.
    """
    seen = set()
    for lidar in lidars:
        address = lidar.lidar_net_info.lidar_ipaddr
        if not address:
            continue
        if address in seen:
            raise ParamsCheckError(f"Params check failed, lidar ip conflict, the lidar ip:{address}")
        seen.add(address)

    for lidar in custom_lidars:
        address = lidar.lidar_net_info.lidar_ipaddr
        if not address:
            raise ParamsCheckError("Params check failed, custom lidar ipaddr is empty.")
        if address in seen:
            raise ParamsCheckError(f"Params check failed, lidar ip conflict the lidar ip:{address}")
        seen.add(address)


def check_multicast_ips(
    lidars: Iterable[LidarConfig], custom_lidars: Iterable[LidarConfig]
) -> None:
    """Raise ``ParamsCheckError`` if a configured multicast address is invalid."""
    for lidar in list(lidars) + list(custom_lidars):
        multicast_ip = lidar.host_net_info.multicast_ip
        if not multicast_ip:
            log.info(
                "Device type:%s lidar ip:%s point cloud data and IMU data unicast is enabled.",
                int(lidar.device_type),
                lidar.lidar_net_info.lidar_ipaddr,
            )
            continue
        if not is_multicast_address(multicast_ip):
            raise ParamsCheckError(f"Params check failed, lidar multicast ip error:{multicast_ip}")
        log.info(
            "Device type:%s point cloud and IMU data multicast ip:%s",
            int(lidar.device_type),
            multicast_ip,
        )


def enforce_mid360_ports(device_type: int, lidar_net_info: LidarNetInfo) -> List[str]:
    """Replace non-standard Mid-360 ports in place; return the corrected field names."""
    if device_type != DeviceType.MID360:
        return []
    corrected = []
    for name, port in _MID360_PORTS:
        if getattr(lidar_net_info, name) != port:
            log.error("Mid360 lidar %s must be %d", name, port)
            setattr(lidar_net_info, name, port)
            corrected.append(name)
    return corrected


def check_params(
    lidars: Optional[Sequence[LidarConfig]], custom_lidars: Optional[Sequence[LidarConfig]]
) -> None:
    """Validate the configuration, fixing Mid-360 ports along the way.

    Raises ``ParamsCheckError`` if nothing is configured or a check fails.
    """
    if lidars is None and custom_lidars is None:
        raise ParamsCheckError("Params check failed, all params is None.")
    lidars = list(lidars or [])
    custom_lidars = list(custom_lidars or [])
    if not lidars and not custom_lidars:
        raise ParamsCheckError("Params check failed, all livox lidars config is empty.")

    check_lidar_ips(lidars, custom_lidars)
    for lidar in lidars + custom_lidars:
        enforce_mid360_ports(lidar.device_type, lidar.lidar_net_info)
    check_multicast_ips(lidars, custom_lidars)