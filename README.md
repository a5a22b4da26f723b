# lidarkit

`lidarkit` provides the host side of a lidar SDK. It is written in pure Python
and has no runtime dependencies. It does not open sockets itself. You supply
the transport that sends commands and receives datagrams. The package parses
and checks configuration, decodes packets, keeps log directories tidy and
drives firmware upgrades.

## Modules

- **`lidarkit.config`** reads the JSON configuration document.
  - `parse_config_file(path)` and `parse_config(document)` return an
    `SdkConfig`. `document` may be a mapping or JSON text.
  - The `SdkConfig` holds lists of `LidarConfig`, as `lidars` and
    `custom_lidars`. Each `LidarConfig` carries a `LidarNetInfo` and a
    `HostNetInfo`. The `SdkConfig` also holds a `LoggerConfig` and a
    `FrameworkConfig`.
  - Malformed documents raise `ConfigError`.
- **`lidarkit.params_check`** checks the parsed configuration.
  - `check_params(lidars, custom_lidars)` raises `ParamsCheckError` in three
    cases: nothing is configured, a lidar IP appears twice, or a multicast
    address lies outside the multicast range.
  - On Mid-360 devices it rewrites any non-standard port to the fixed port
    (`enforce_mid360_ports`).
  - `check_lidar_ips`, `check_multicast_ips` and `is_multicast_address` can
    also be called on their own.
- **`lidarkit.defs`** holds the protocol definitions:
  - the enums `DeviceType`, `ParamKey`, `PointDataType`, `LogType`, `Status`,
    `ScanPattern`, `FrameRate`, `WorkMode`, `WorkModeAfterBoot`, `DetectMode`,
    `GlassHeat`, `FsmState` and `FsmEvent`;
  - the exception `LidarStatusError`;
  - `sdk_version()`, which returns 1.2.5;
  - the packed configuration structures `InstallAttitude`, `FovCfg` and
    `FuncIOCfg`, each with `to_bytes()`.
- **`lidarkit.packets`** decodes packets. `EthernetPacket` decodes point cloud
  and IMU datagrams, and `CmdPacket` decodes command packets; both have
  `from_bytes` and `to_bytes`. `iter_points(packet)` yields the packet's
  points, each as one of `ImuRawPoint`, `CartesianHighPoint`,
  `CartesianLowPoint` or `SphericalPoint`.
- **`lidarkit.file_manager`** holds helpers for log directories:
  - `dir_total_size` and `collect_file_names`. The latter orders visible files
    by their 19-character time prefix.
  - `reveal_hidden_files` and `reveal_file`, which drop the leading dot from
    file names.
  - `delete_hidden_files`, `make_directory` and `directory_exists`.
- **`lidarkit.log_cleanup`** keeps the log directories within budget.
  - `split_cache_size(mb)` divides a log budget between real-time logs and
    exception logs.
  - `prune_log_dir(path, max_size)` removes the oldest files until `path`
    fits within `max_size`.
  - `LogCleaner(root, max_realtime, max_exception)` prunes `root/type_0` and
    `root/type_1`. It can run once with `cleanup_once()`. It can also run on a
    background thread with `start(interval)`, `trigger()` and `stop()`, or as a
    context manager.
- **`lidarkit.firmware`** loads firmware images.
  - `Firmware().open(path)` loads and validates an image. It checks the
    header with `crc16_mcrf4xx` and raises `FirmwareError` on failure.
  - `FirmwareHeader` has `from_bytes` and `to_bytes`.
- **`lidarkit.upgrader`** provides `LidarUpgrader`, which drives the upgrade
  state machine for one device. The steps are: request the upgrade, transfer
  the image, complete the transfer, poll progress, then reboot. Each step is
  retried up to its limit.
- **`lidarkit.upgrade_manager`** provides `UpgradeManager`, which upgrades
  several devices from one firmware file. `upgrade(handles)` waits for every
  device and returns `{handle: succeeded}`.

## Install

```
pip install .
pip install ".[test]"   # with the test requirements
```

## Examples

Parse and check a configuration:

```python
from lidarkit.config import parse_config_file
from lidarkit.params_check import check_params

cfg = parse_config_file("mid360_config.json")
check_params(cfg.lidars, cfg.custom_lidars)
```

Decode a point cloud datagram received on your own socket:

```python
from lidarkit.packets import EthernetPacket, iter_points

packet = EthernetPacket.from_bytes(datagram)
for point in iter_points(packet):
    print(point)
```

Inspect a firmware image:

```python
from lidarkit.firmware import Firmware

with Firmware() as fw:
    fw.open("firmware.bin")
    print(fw.header.device_type, fw.header.firmware_length)
```

Upgrade devices. `commands` is your object that sends the upgrade commands to
the lidars. It provides five methods:

- `start_upgrade(handle, callback, **request)`
- `xfer_firmware(handle, callback, **request)`
- `complete_xfer_firmware(handle, callback, **request)`
- `get_upgrade_progress(handle, callback)`
- `request_reboot(handle, callback)`

When a reply arrives, call `callback(status, response)`. `response` has a
`ret_code` attribute. For progress replies it also has a `progress` attribute.

```python
from lidarkit.upgrade_manager import UpgradeManager

manager = UpgradeManager(commands)
manager.set_firmware_path("firmware.bin")
manager.set_progress_callback(lambda handle, state: print(handle, state.state, state.progress))
results = manager.upgrade([0x0A00A8C0])
```

Keep log directories within a 400 MiB budget:

```python
from lidarkit.log_cleanup import LogCleaner, split_cache_size

realtime, exception = split_cache_size(400)
LogCleaner("lidar_log", realtime, exception).cleanup_once()
```

## What it does not do

- It has no network layer. Nothing here discovers lidars, opens sockets or
  sends bytes. The upgrade code only calls the `commands` object you supply.
- It does not receive the log files a lidar pushes. Nothing here writes pushed
  log chunks to disk, acknowledges them or starts and stops device logging.
  The package only looks after log directories that already exist: it
  reveals, deletes and prunes files in them.
- It has no command-line program.

## Tests

```
pytest
```