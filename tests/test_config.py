import copy
import json

import pytest

from lidarkit.config import (
    ConfigError,
    HostNetInfo,
    LidarNetInfo,
    parse_config,
    parse_config_file,
)
from lidarkit.defs import DeviceType

LIDAR_NET = {
    "cmd_data_port": 56100,
    "push_msg_port": 56200,
    "point_data_port": 56300,
    "imu_data_port": 56400,
    "log_data_port": 56500,
}

HOST_NET = {
    "cmd_data_ip": "192.168.1.5",
    "cmd_data_port": 56101,
    "push_msg_ip": "192.168.1.5",
    "push_msg_port": 56201,
    "point_data_ip": "192.168.1.5",
    "point_data_port": 56301,
    "imu_data_ip": "192.168.1.5",
    "imu_data_port": 56401,
    "log_data_ip": "",
    "log_data_port": 56501,
}


def old_style_doc():
    return {
        "lidar_summary_info": {"lidar_type": 8},
        "MID360": {
            "lidar_net_info": dict(LIDAR_NET),
            "host_net_info": dict(HOST_NET),
        },
    }


def new_style_doc():
    plain = dict(HOST_NET, host_ip="192.168.1.50")
    custom = dict(HOST_NET, lidar_ip=["192.168.1.100", "192.168.1.101"], multicast_ip="224.1.1.5")
    return {
        "HAP": {
            "lidar_net_info": dict(LIDAR_NET),
            "host_net_info": [plain, custom],
        }
    }


def test_old_style_section_gives_one_lidar():
    config = parse_config(old_style_doc())
    assert config.custom_lidars == []
    assert len(config.lidars) == 1
    lidar = config.lidars[0]
    assert lidar.device_type is DeviceType.MID360
    assert lidar.lidar_net_info == LidarNetInfo(**LIDAR_NET)
    assert lidar.host_net_info.host_ip == "192.168.1.5"
    assert lidar.host_net_info.multicast_ip == ""
    assert lidar.host_net_info.point_data_port == HOST_NET["point_data_port"]


def test_defaults_when_absent():
    config = parse_config(old_style_doc())
    assert config.framework.master_sdk is True
    assert config.logger.lidar_log_enable is False
    assert config.logger.lidar_log_cache_size == 0
    assert config.logger.lidar_log_path == "./"


def test_new_style_section_splits_custom_lidars():
    config = parse_config(new_style_doc())
    assert len(config.lidars) == 1
    assert config.lidars[0].device_type is DeviceType.INDUSTRIAL_HAP
    assert config.lidars[0].lidar_net_info.lidar_ipaddr == ""
    assert [c.lidar_net_info.lidar_ipaddr for c in config.custom_lidars] == ["192.168.1.100", "192.168.1.101"]
    assert all(c.host_net_info.multicast_ip == "224.1.1.5" for c in config.custom_lidars)


def test_host_ip_overrides_cmd_data_ip():
    config = parse_config(new_style_doc())
    assert config.lidars[0].host_net_info.host_ip == "192.168.1.50"


def test_custom_lidars_do_not_share_net_info():
    config = parse_config(new_style_doc())
    first, second = config.custom_lidars
    first.lidar_net_info.cmd_data_port = 1
    assert second.lidar_net_info.cmd_data_port == LIDAR_NET["cmd_data_port"]


def test_hap_sections_come_before_mid360():
    doc = new_style_doc()
    doc.update(old_style_doc())
    config = parse_config(doc)
    assert [c.device_type for c in config.lidars] == [DeviceType.INDUSTRIAL_HAP, DeviceType.MID360]


def test_non_object_section_is_ignored():
    doc = old_style_doc()
    doc["HAP"] = [1, 2]
    config = parse_config(doc)
    assert [c.device_type for c in config.lidars] == [DeviceType.MID360]


def test_master_sdk_false():
    doc = old_style_doc()
    doc["master_sdk"] = False
    assert parse_config(doc).framework.master_sdk is False


def test_master_sdk_must_be_bool():
    doc = old_style_doc()
    doc["master_sdk"] = 1
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_logger_enabled():
    doc = old_style_doc()
    doc.update(lidar_log_enable=True, lidar_log_cache_size_MB=500, lidar_log_path="/tmp/logs")
    logger = parse_config(doc).logger
    assert logger.lidar_log_enable is True
    assert logger.lidar_log_cache_size == 500
    assert logger.lidar_log_path == "/tmp/logs"


def test_logger_path_used_even_when_not_enabled():
    doc = old_style_doc()
    doc["lidar_log_path"] = "/var/tmp"
    logger = parse_config(doc).logger
    assert logger.lidar_log_enable is False
    assert logger.lidar_log_path == "/var/tmp"


@pytest.mark.parametrize(
    "extra",
    [
        {"lidar_log_enable": "yes", "lidar_log_cache_size_MB": 1, "lidar_log_path": "./"},
        {"lidar_log_enable": False, "lidar_log_path": "./"},
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": -1, "lidar_log_path": "./"},
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": 10},
        {"lidar_log_enable": True, "lidar_log_cache_size_MB": 10, "lidar_log_path": 3},
    ],
)
def test_bad_logger_settings(extra):
    doc = old_style_doc()
    doc.update(extra)
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_missing_host_net_info():
    doc = old_style_doc()
    del doc["MID360"]["host_net_info"]
    with pytest.raises(ConfigError):
        parse_config(doc)


@pytest.mark.parametrize("port", ["cmd_data_port", "push_msg_port", "point_data_port", "imu_data_port", "log_data_port"])
def test_missing_or_bad_lidar_port(port):
    doc = old_style_doc()
    del doc["MID360"]["lidar_net_info"][port]
    with pytest.raises(ConfigError):
        parse_config(doc)
    doc["MID360"]["lidar_net_info"][port] = "80"
    with pytest.raises(ConfigError):
        parse_config(doc)


@pytest.mark.parametrize("port", ["cmd_data_port", "push_msg_port", "point_data_port", "imu_data_port", "log_data_port"])
def test_missing_host_port(port):
    doc = old_style_doc()
    del doc["MID360"]["host_net_info"][port]
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_host_needs_an_address():
    doc = old_style_doc()
    del doc["MID360"]["host_net_info"]["cmd_data_ip"]
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_host_ip_must_be_string():
    doc = old_style_doc()
    doc["MID360"]["host_net_info"]["host_ip"] = 5
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_multicast_ip_must_be_string():
    doc = old_style_doc()
    doc["MID360"]["host_net_info"]["multicast_ip"] = None
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_custom_lidar_ip_must_be_string():
    doc = new_style_doc()
    doc["HAP"]["host_net_info"][1]["lidar_ip"] = ["192.168.1.100", 7]
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_boolean_port_rejected():
    doc = old_style_doc()
    doc["MID360"]["lidar_net_info"]["cmd_data_port"] = True
    with pytest.raises(ConfigError):
        parse_config(doc)


def test_json_text_and_file_agree(tmp_path):
    doc = new_style_doc()
    path = tmp_path / "config.json"
    path.write_text(json.dumps(doc))
    from_file = parse_config_file(path)
    assert from_file == parse_config(json.dumps(doc))
    assert from_file == parse_config(copy.deepcopy(doc))


def test_invalid_json_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{ not json")
    with pytest.raises(ConfigError):
        parse_config_file(path)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        parse_config_file(tmp_path / "absent.json")


def test_top_level_must_be_object():
    with pytest.raises(ConfigError):
        parse_config("[1, 2, 3]")


def test_host_net_info_dataclass_default():
    assert HostNetInfo().multicast_ip == ""