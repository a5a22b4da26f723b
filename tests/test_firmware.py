from dataclasses import replace

import pytest

from lidarkit.firmware import (
    ENL_FILE_VERSION_V3,
    HEADER_SIZE,
    MIN_FILE_SIZE,
    TAIL_SIZE,
    Firmware,
    FirmwareDeviceType,
    FirmwareError,
    FirmwareHeader,
    FirmwareType,
    crc16_mcrf4xx,
)


def _header(length):
    header = FirmwareHeader(
        file_version=ENL_FILE_VERSION_V3,
        firmware_version=0x01020304,
        firmware_length=length,
        firmware_type=FirmwareType.APP,
        device_type=FirmwareDeviceType.LIDAR_HAP,
        encrypt_type=1,
        checksum_type=2,
        checksum_length=16,
        checksum=bytes(range(16)).ljust(128, b"\0"),
        hw_whitelist=b"whitelist".ljust(128, b"\0"),
        modify_time=1_650_000_000,
    )
    raw = header.to_bytes()
    return replace(header, header_checksum=crc16_mcrf4xx(raw[:-2]))


def _write_firmware(path, payload, tail=b"S" * TAIL_SIZE, header=None):
    header = header or _header(len(payload))
    path.write_bytes(header.to_bytes() + payload + tail)
    return header


def test_crc16_mcrf4xx_check_value():
    assert crc16_mcrf4xx(b"123456789") == 0x6F91


def test_crc16_residue_is_zero_with_appended_crc():
    data = b"lidar firmware chunk"
    crc = crc16_mcrf4xx(data)
    assert crc16_mcrf4xx(data + crc.to_bytes(2, "little")) == 0


def test_header_size_is_packed():
    assert HEADER_SIZE == 286
    assert MIN_FILE_SIZE == HEADER_SIZE + TAIL_SIZE + 1
    assert len(FirmwareHeader().to_bytes()) == HEADER_SIZE


def test_header_round_trip():
    header = _header(4096)
    assert FirmwareHeader.from_bytes(header.to_bytes()) == header


def test_header_from_short_bytes_raises():
    with pytest.raises(FirmwareError):
        FirmwareHeader.from_bytes(b"\0" * (HEADER_SIZE - 1))


def test_open_valid_firmware(tmp_path):
    payload = bytes(range(256)) * 4
    tail = b"T" * TAIL_SIZE
    path = tmp_path / "fw.bin"
    header = _write_firmware(path, payload, tail)
    with Firmware() as firmware:
        firmware.open(path)
        assert firmware.header == header
        assert firmware.data == payload
        assert firmware.tail == tail
        assert firmware.file_size == HEADER_SIZE + len(payload) + len(tail)


def test_open_bad_checksum_raises(tmp_path):
    payload = b"x" * 100
    header = replace(_header(len(payload)), header_checksum=0)
    good = _header(len(payload)).header_checksum
    if good == 0:
        header = replace(header, header_checksum=1)
    path = tmp_path / "bad.bin"
    _write_firmware(path, payload, header=header)
    with pytest.raises(FirmwareError):
        Firmware().open(path)


def test_open_too_small_raises(tmp_path):
    path = tmp_path / "small.bin"
    path.write_bytes(b"\0" * (MIN_FILE_SIZE - 1))
    with pytest.raises(FirmwareError):
        Firmware().open(path)


def test_open_missing_file_raises(tmp_path):
    with pytest.raises(FirmwareError):
        Firmware().open(tmp_path / "absent.bin")


def test_truncated_payload_keeps_partial_data(tmp_path):
    header = _header(1000)
    partial = b"p" * 200
    path = tmp_path / "short.bin"
    path.write_bytes(header.to_bytes() + partial)
    firmware = Firmware()
    firmware.open(path)
    assert firmware.data == partial
    assert firmware.tail == bytes(TAIL_SIZE)
    assert firmware.header.firmware_length == 1000
    firmware.close()


def test_reopen_after_close(tmp_path):
    first = tmp_path / "a.bin"
    second = tmp_path / "b.bin"
    _write_firmware(first, b"1" * 50)
    _write_firmware(second, b"2" * 60)
    firmware = Firmware()
    firmware.open(first)
    firmware.close()
    firmware.open(second)
    assert firmware.data == b"2" * 60
    firmware.close()