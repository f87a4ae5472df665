import ipaddress
import os
from datetime import datetime

import pytest

from fbconsole.sysinfo import (
    NO_IP,
    UNKNOWN,
    format_bytes,
    format_disk_size,
    format_uptime,
    get_device_ip,
    get_system_info,
    is_physical_disk,
    parse_cpuinfo,
    parse_default_route_device,
    parse_meminfo_mb,
    parse_meminfo_usage,
    parse_partitions,
    parse_uptime,
    read_device_id,
)


@pytest.mark.parametrize("days,hours,minutes", [(0, 0, 0), (1, 2, 3), (45, 23, 59)])
def test_format_uptime_components(days, hours, minutes):
    seconds = days * 86400 + hours * 3600 + minutes * 60 + 30
    assert format_uptime(seconds) == f"{days}天 {hours}小时 {minutes}分钟"


@pytest.mark.parametrize("seconds", [-1, 365 * 24 * 3600 * 100 + 1])
def test_format_uptime_rejects_unreasonable(seconds):
    with pytest.raises(ValueError):
        format_uptime(seconds)


def test_parse_uptime_uses_first_field():
    assert parse_uptime("12345.67 99999.0\n") == format_uptime(12345.67)


@pytest.mark.parametrize("text", ["", "   ", "abc 1.0"])
def test_parse_uptime_invalid(text):
    with pytest.raises(ValueError):
        parse_uptime(text)


def test_parse_cpuinfo_counts_processors():
    n = 4
    text = "".join(
        f"processor\t: {i}\nmodel name\t: Example CPU @ 2.00GHz\nflags\t: fpu\n\n"
        for i in range(n)
    )
    assert parse_cpuinfo(text) == ("Example CPU @ 2.00GHz", n)


def test_parse_cpuinfo_truncates_long_model():
    name = "X" * 150
    model, _ = parse_cpuinfo(f"processor : 0\nmodel name : {name}\n")
    assert model == name[:100] + "..."


def test_parse_cpuinfo_defaults():
    model, count = parse_cpuinfo("flags : fpu\n")
    assert model == "未知处理器"
    assert count == (os.cpu_count() or 1)


def test_parse_cpuinfo_too_many_cores():
    with pytest.raises(ValueError):
        parse_cpuinfo("processor : 0\n" * 1025)


def test_parse_meminfo_mb():
    total_mb, avail_mb = 2048, 512
    text = (
        f"MemTotal:       {total_mb * 1024} kB\n"
        f"MemFree:        100 kB\n"
        f"MemAvailable:   {avail_mb * 1024} kB\n"
    )
    assert parse_meminfo_mb(text) == f"{total_mb - avail_mb}M/{total_mb}MB"


def test_parse_meminfo_mb_available_above_total_counts_all_used():
    text = "MemTotal: 4096 kB\nMemAvailable: 9999 kB\n"
    assert parse_meminfo_mb(text) == "4M/4MB"


def test_parse_meminfo_mb_missing_total():
    assert parse_meminfo_mb("MemAvailable: 100 kB\n") == UNKNOWN


def test_parse_meminfo_usage_contains_sizes():
    total_kb, avail_kb = 8 * 1024 * 1024, 2 * 1024 * 1024
    text = f"MemTotal: {total_kb} kB\nMemAvailable: {avail_kb} kB\n"
    result = parse_meminfo_usage(text)
    assert format_bytes((total_kb - avail_kb) * 1024) in result
    assert format_bytes(total_kb * 1024) in result
    assert result.split("%")[0] == f"{(total_kb - avail_kb) / total_kb * 100:.1f}"


def test_parse_meminfo_usage_unknown():
    assert parse_meminfo_usage("") == UNKNOWN


def test_format_bytes_small_values():
    assert format_bytes(512) == "512 B"


def test_format_bytes_units():
    assert format_bytes(1024) == "1.0 KB"
    assert format_bytes(1024**3) == "1.0 GB"


@pytest.mark.parametrize("exp,letter", list(enumerate("KMGTP")))
def test_format_disk_size_units(exp, letter):
    assert format_disk_size(3 * 1024 ** (exp + 1)) == f"3{letter}"


def test_format_disk_size_small():
    assert format_disk_size(100) == "100 B"


@pytest.mark.parametrize("name", ["sda", "sdb", "hda", "nvme0n1", "nvme1n1"])
def test_physical_disks(name):
    assert is_physical_disk(name) is True


@pytest.mark.parametrize(
    "name", ["sda1", "hda2", "nvme0n1p1", "loop0", "ram0", "dm-0", "sr0", "mmcblk0"]
)
def test_non_physical_disks(name):
    assert is_physical_disk(name) is False


def test_parse_partitions_sums_whole_disks():
    a_kb, b_kb = 3 * 1024 * 1024, 1024 * 1024
    text = (
        "major minor  #blocks  name\n\n"
        f"   8        0 {a_kb} sda\n"
        f"   8        1 {a_kb - 1} sda1\n"
        f"   8       16 {b_kb} sdb\n"
        "   7        0 1000 loop0\n"
        "  11        0 bad sr0\n"
    )
    size, count = parse_partitions(text)
    assert count == 2
    assert size == format_disk_size((a_kb + b_kb) * 1024)


def test_parse_partitions_no_disks():
    assert parse_partitions("major minor  #blocks  name\n 7 0 100 loop0\n") == (UNKNOWN, 0)


def test_parse_default_route_device():
    text = "default via 192.0.2.1 dev eth0 proto dhcp metric 100\n"
    assert parse_default_route_device(text) == "eth0"


def test_parse_default_route_device_missing():
    assert parse_default_route_device("") is None
    assert parse_default_route_device("default via 192.0.2.1 dev\n") is None


def test_read_device_id_strips(tmp_path):
    path = tmp_path / "id"
    path.write_text("  DEVICE-TEST-0001\n", encoding="utf-8")
    assert read_device_id(str(path)) == "DEVICE-TEST-0001"


def test_read_device_id_empty(tmp_path):
    path = tmp_path / "id"
    path.write_text("  \n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_device_id(str(path))


def test_read_device_id_missing(tmp_path):
    with pytest.raises(OSError):
        read_device_id(str(tmp_path / "absent"))


def test_get_device_ip_unknown_interface():
    with pytest.raises(OSError):
        get_device_ip("nosuchif9")


def test_get_system_info_invariants():
    info = get_system_info()
    parsed = datetime.strptime(info.current_time, "%Y-%m-%d %H:%M:%S")
    assert abs((datetime.now() - parsed).total_seconds()) < 60
    assert info.cpu_cores >= 1
    assert info.disk_count >= 0
    assert info.device_id
    if info.ip_address not in (UNKNOWN, NO_IP):
        assert not ipaddress.IPv4Address(info.ip_address).is_loopback