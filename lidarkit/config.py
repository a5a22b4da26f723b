"""Loading the JSON configuration that describes the lidars to talk to.

The document may hold a ``HAP`` and a ``MID360`` section.  Each gives the
lidar-side ports in ``lidar_net_info`` and the host side in
``host_net_info``.  ``host_net_info`` is either one object, which describes
lidars found by broadcast, or a list of objects.  An entry in the list with
a ``lidar_ip`` array describes one custom lidar per address.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, List, Union

from .defs import DeviceType

DEVICE_SECTIONS = (
    ("HAP", DeviceType.INDUSTRIAL_HAP),
    ("MID360", DeviceType.MID360),
)

_PORT_NAMES = (
    "cmd_data_port",
    "push_msg_port",
    "point_data_port",
    "imu_data_port",
    "log_data_port",
)

_UINT_MAX = 0xFFFFFFFF


class ConfigError(ValueError):
    """Raised when a configuration document is malformed."""


@dataclass
class LidarNetInfo:
    """Ports on the lidar side, and the lidar address for custom lidars."""

    cmd_data_port: int = 0
    push_msg_port: int = 0
    point_data_port: int = 0
    imu_data_port: int = 0
    log_data_port: int = 0
    lidar_ipaddr: str = ""


@dataclass
class HostNetInfo:
    """Address and ports on the host side."""

    host_ip: str = ""
    multicast_ip: str = ""
    cmd_data_port: int = 0
    push_msg_port: int = 0
    point_data_port: int = 0
    imu_data_port: int = 0
    log_data_port: int = 0


@dataclass
class LidarConfig:
    device_type: DeviceType
    lidar_net_info: LidarNetInfo = field(default_factory=LidarNetInfo)
    host_net_info: HostNetInfo = field(default_factory=HostNetInfo)


@dataclass
class LoggerConfig:
    lidar_log_enable: bool = False
    lidar_log_cache_size: int = 0
    lidar_log_path: str = "./"


@dataclass
class FrameworkConfig:
    master_sdk: bool = True


@dataclass
class SdkConfig:
    """Everything read from one configuration document."""

    lidars: List[LidarConfig] = field(default_factory=list)
    custom_lidars: List[LidarConfig] = field(default_factory=list)
    logger: LoggerConfig = field(default_factory=LoggerConfig)
    framework: FrameworkConfig = field(default_factory=FrameworkConfig)


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= _UINT_MAX


def _require_object(value: Any, what: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise ConfigError(f"{what} is not an object")
    return value


def _ports(source: Mapping, what: str) -> dict:
    ports = {}
    for name in _PORT_NAMES:
        if not _is_uint(source.get(name)):
            raise ConfigError(f"Parse {what} failed, has not {name} member or {name} is not uint.")
        ports[name] = source[name]
    return ports


def _parse_lidar_net_info(section: Mapping) -> LidarNetInfo:
    net = section.get("lidar_net_info")
    if not isinstance(net, Mapping):
        raise ConfigError(
            "Parse lidar net info failed, has not lidar_net_info member or lidar_net_info is not object."
        )
    return LidarNetInfo(**_ports(net, "lidar net info"))


def _parse_host_net_info(entry: Any) -> HostNetInfo:
    entry = _require_object(entry, "host_net_info entry")
    if "host_ip" not in entry and "cmd_data_ip" not in entry:
        raise ConfigError("Parse host net info failed, has not host_ip or cmd_data_ip.")
    for key in ("host_ip", "cmd_data_ip"):
        if key in entry and not isinstance(entry[key], str):
            raise ConfigError(f"Parse host net info failed, {key} is not string.")

    host_ip = entry.get("host_ip", entry.get("cmd_data_ip", ""))

    multicast_ip = entry.get("multicast_ip", "")
    if not isinstance(multicast_ip, str):
        raise ConfigError("Parse host net info failed, multicast_ip is not string.")

    return HostNetInfo(host_ip=host_ip, multicast_ip=multicast_ip, **_ports(entry, "host net info"))


def _make_lidar(section: Mapping, host_entry: Any, device_type: DeviceType, lidar_ip: str = "") -> LidarConfig:
    net = _parse_lidar_net_info(section)
    net.lidar_ipaddr = lidar_ip
    return LidarConfig(device_type=device_type, lidar_net_info=net, host_net_info=_parse_host_net_info(host_entry))


def _parse_section(section: Mapping, device_type: DeviceType, config: SdkConfig) -> None:
    host_info = section.get("host_net_info")
    if isinstance(host_info, list):
        for entry in host_info:
            entry = _require_object(entry, "host_net_info entry")
            lidar_ips = entry.get("lidar_ip")
            if not isinstance(lidar_ips, list):
                config.lidars.append(_make_lidar(section, entry, device_type))
                continue
            for lidar_ip in lidar_ips:
                if not isinstance(lidar_ip, str):
                    raise ConfigError("Parse lidar ip failed, lidar_ip is not string.")
                config.custom_lidars.append(_make_lidar(section, entry, device_type, lidar_ip))
    elif isinstance(host_info, Mapping):
        config.lidars.append(_make_lidar(section, host_info, device_type))
    else:
        raise ConfigError(
            "Parse lidar net info failed, has not host_net_info member or host_net_info is not object or array."
        )


def _parse_logger(doc: Mapping) -> LoggerConfig:
    if "lidar_log_enable" not in doc:
        path = doc.get("lidar_log_path")
        return LoggerConfig(lidar_log_path=path if isinstance(path, str) else "./")

    enable = doc["lidar_log_enable"]
    if not isinstance(enable, bool):
        raise ConfigError("Lidar log enable data type is error")
    cache_size = doc.get("lidar_log_cache_size_MB")
    if not _is_uint(cache_size):
        raise ConfigError("has not lidar_log_cache_size_MB member or lidar_log_cache_size_MB is not uint")
    path = doc.get("lidar_log_path")
    if not isinstance(path, str):
        raise ConfigError("has not lidar_log_path member or lidar_log_path is not string")
    return LoggerConfig(lidar_log_enable=enable, lidar_log_cache_size=cache_size, lidar_log_path=path)


def _reject_constant(name: str) -> Any:
    raise ConfigError(f"invalid JSON constant {name}")


def _loads(text: Union[str, bytes]) -> Any:
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Parse lidar config failed, parse the config file has error: {exc}") from exc


def parse_config(document: Union[Mapping, str, bytes]) -> SdkConfig:
    """Build an ``SdkConfig`` from a decoded document or from JSON text.

    Raises ``ConfigError`` on any malformed or missing value.
    """
    if isinstance(document, (str, bytes, bytearray)):
        document = _loads(document)
    doc = _require_object(document, "configuration document")

    config = SdkConfig()
    if "master_sdk" in doc:
        if not isinstance(doc["master_sdk"], bool):
            raise ConfigError("set master/slave sdk error")
        config.framework.master_sdk = doc["master_sdk"]

    config.logger = _parse_logger(doc)

    for name, device_type in DEVICE_SECTIONS:
        section = doc.get(name)
        if isinstance(section, Mapping):
            _parse_section(section, device_type, config)
    return config


def parse_config_file(path: Union[str, "os.PathLike[str]"]) -> SdkConfig:
    """Read and parse the JSON configuration file at ``path``."""
    try:
        with open(path, "rb") as handle:
            raw = handle.read()
    except OSError as exc:
        raise ConfigError(f"Parse lidar config failed, can not open json config file: {path}") from exc
    return parse_config(_loads(raw))