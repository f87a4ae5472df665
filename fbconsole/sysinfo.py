"""Collection of host status: uptime, CPU, memory, disks, address and device id."""

from __future__ import annotations

import ipaddress
import os
import socket
import struct
import subprocess
from dataclasses import dataclass
from datetime import datetime

UNKNOWN = "未知"
NO_IP = "未获取到IP"
NO_DEVICE_ID = "未获取到"
DEVICE_ID_PATH = "/usr/local/etc/device/id"

_MAX_UPTIME_SECONDS = 365 * 24 * 3600 * 100
_MAX_CPU_COUNT = 1024
_MAX_CPU_MODEL_LEN = 100
_MAX_MEMTOTAL_KB = 1024 * 1024 * 1024

_SIOCGIFFLAGS = 0x8913
_SIOCGIFADDR = 0x8915
_IFF_UP = 0x1
_IFF_LOOPBACK = 0x8


@dataclass
class SystemInfo:
    """Snapshot of the host status shown on the main screen."""

    uptime: str
    cpu_model: str
    cpu_cores: int
    memory_usage: str
    disk_size: str
    disk_count: int
    current_time: str
    ip_address: str
    device_id: str


def format_uptime(seconds: float) -> str:
    """Format a number of seconds as days, hours and minutes."""
    if seconds < 0 or seconds > _MAX_UPTIME_SECONDS:
        raise ValueError(f"不合理的uptime值: {seconds}")
    total = int(seconds)
    days = total // 86400
    hours = (total % 86400) // 3600
    minutes = (total % 3600) // 60
    return f"{days}天 {hours}小时 {minutes}分钟"


def parse_uptime(text: str) -> str:
    """Parse the contents of /proc/uptime into a formatted duration."""
    fields = text.split()
    if not fields:
        raise ValueError("invalid uptime format")
    try:
        seconds = float(fields[0])
    except ValueError as exc:
        raise ValueError(f"解析uptime数据失败: {exc}") from exc
    return format_uptime(seconds)


def get_uptime() -> str:
    """Read and format the system uptime."""
    with open("/proc/uptime", encoding="utf-8") as fh:
        return parse_uptime(fh.read())


def parse_cpuinfo(text: str) -> tuple[str, int]:
    """Return the CPU model name and processor count from /proc/cpuinfo text."""
    model = ""
    count = 0
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        if line.startswith("model name"):
            parts = line.split(":", 1)
            if len(parts) == 2:
                model = parts[1].strip()
                if len(model) > _MAX_CPU_MODEL_LEN:
                    model = model[:_MAX_CPU_MODEL_LEN] + "..."
        if line.startswith("processor"):
            count += 1
            if count > _MAX_CPU_COUNT:
                raise ValueError(f"CPU核心数过多: {count}")
    if not model:
        model = "未知处理器"
    if count == 0:
        count = os.cpu_count() or 1
    return model, count


def get_cpu_info() -> tuple[str, int]:
    """Read the CPU model and core count."""
    with open("/proc/cpuinfo", encoding="utf-8", errors="replace") as fh:
        return parse_cpuinfo(fh.read())


def _parse_meminfo(text: str) -> tuple[int, int]:
    total = 0
    available = 0
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        for key in ("MemTotal:", "MemAvailable:"):
            if line.startswith(key):
                fields = line.split()
                if len(fields) >= 2:
                    try:
                        value = int(fields[1])
                    except ValueError:
                        continue
                    if key == "MemTotal:":
                        total = value
                    else:
                        available = value
    return total, available


def parse_meminfo_mb(text: str) -> str:
    """Return memory use as "<used>M/<total>MB" from /proc/meminfo text."""
    total, available = _parse_meminfo(text)
    if total <= 0:
        return UNKNOWN
    if available < 0 or available > total:
        available = 0
    used = total - available
    return f"{used // 1024}M/{total // 1024}MB"


def parse_meminfo_usage(text: str) -> str:
    """Return memory use as a percentage with human-readable sizes."""
    total, available = _parse_meminfo(text)
    if total <= 0 or total > _MAX_MEMTOTAL_KB:
        return UNKNOWN
    if available < 0 or available > total:
        available = 0
    used = total - available
    percent = used / total * 100
    return (
        f"{percent:.1f}% (已用: {format_bytes(used * 1024)} / "
        f"总计: {format_bytes(total * 1024)})"
    )


def get_memory_usage_mb() -> str:
    """Read memory usage in megabytes."""
    with open("/proc/meminfo", encoding="utf-8") as fh:
        return parse_meminfo_mb(fh.read())


def format_bytes(size: int) -> str:
    """Format a byte count with one decimal and a binary unit prefix."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}B"


def format_disk_size(size: int) -> str:
    """Format a byte count as a whole number with a one-letter unit."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    units = "KMGTPE"
    if exp < len(units):
        return f"{size / div:.0f}{units[exp]}"
    return f"{size} B"


def is_physical_disk(device_name: str) -> bool:
    """Tell whether a block device name denotes a whole physical disk."""
    if device_name.startswith(("loop", "ram", "dm-")):
        return False
    if device_name.startswith("sd") and len(device_name) == 3:
        return True
    if device_name.startswith("nvme") and "n" in device_name and "p" not in device_name:
        return True
    if device_name.startswith("hd") and len(device_name) == 3:
        return True
    return False


def parse_partitions(text: str) -> tuple[str, int]:
    """Return total size and count of physical disks from /proc/partitions text."""
    disks: dict[str, int] = {}
    for raw in text.split("\n"):
        line = raw.strip()
        if not line or line.startswith("major"):
            continue
        fields = line.split()
        if len(fields) < 4:
            continue
        name = fields[3]
        try:
            size_kb = int(fields[2])
        except ValueError:
            continue
        if is_physical_disk(name):
            disks[name] = size_kb
    if not disks:
        return UNKNOWN, 0
    return format_disk_size(sum(disks.values()) * 1024), len(disks)


def get_physical_disk_info() -> tuple[str, int]:
    """Read the total size and number of physical disks."""
    with open("/proc/partitions", encoding="utf-8") as fh:
        return parse_partitions(fh.read())


def parse_default_route_device(text: str) -> str | None:
    """Return the device named after "dev" in `ip route show default` output."""
    for raw in text.split("\n"):
        fields = raw.split()
        for field_, following in zip(fields, fields[1:]):
            if field_ == "dev":
                return following
    return None


def _ifreq(sock: socket.socket, request: int, name: str) -> bytes:
    import fcntl

    packed = struct.pack("256s", name.encode()[:15])
    return fcntl.ioctl(sock.fileno(), request, packed)


def _usable_ipv4(sock: socket.socket, name: str) -> str | None:
    try:
        flags = struct.unpack_from("H", _ifreq(sock, _SIOCGIFFLAGS, name), 16)[0]
    except OSError:
        return None
    if not flags & _IFF_UP or flags & _IFF_LOOPBACK:
        return None
    try:
        address = socket.inet_ntoa(_ifreq(sock, _SIOCGIFADDR, name)[20:24])
    except OSError:
        return None
    if ipaddress.IPv4Address(address).is_loopback:
        return None
    return address


def get_device_ip(device_name: str) -> str:
    """Return the IPv4 address of an up, non-loopback interface by name."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        for _, name in socket.if_nameindex():
            if name != device_name:
                continue
            address = _usable_ipv4(sock, name)
            if address:
                return address
    raise OSError(f"未找到设备 {device_name} 的IP地址")


def get_first_non_loopback_ip() -> str:
    """Return the first IPv4 address of any up, non-loopback interface."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        for _, name in socket.if_nameindex():
            address = _usable_ipv4(sock, name)
            if address:
                return address
    return NO_IP


def get_default_route_ip() -> str:
    """Return the address of the default-route interface, or of any interface."""
    try:
        proc = subprocess.run(
            ["ip", "route", "show", "default"],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=5,
            check=True,
        )
    except (subprocess.SubprocessError, OSError) as exc:
        raise OSError(f"获取默认路由失败: {exc}") from exc
    device = parse_default_route_device(proc.stdout.decode(errors="replace"))
    if device:
        return get_device_ip(device)
    return get_first_non_loopback_ip()


def read_device_id(path: str = DEVICE_ID_PATH) -> str:
    """Read the device identifier from a file."""
    with open(path, encoding="utf-8") as fh:
        device_id = fh.read().strip()
    if not device_id:
        raise ValueError("设备ID为空")
    return device_id


def get_system_info() -> SystemInfo:
    """Gather a full status snapshot, substituting placeholders for failures."""
    try:
        uptime = get_uptime()
    except (OSError, ValueError):
        uptime = UNKNOWN

    try:
        cpu_model, cpu_cores = get_cpu_info()
    except (OSError, ValueError):
        cpu_model, cpu_cores = UNKNOWN, os.cpu_count() or 1

    try:
        memory = get_memory_usage_mb()
    except (OSError, ValueError):
        memory = UNKNOWN

    try:
        disk_size, disk_count = get_physical_disk_info()
    except (OSError, ValueError):
        disk_size, disk_count = UNKNOWN, 0

    try:
        ip_address = get_default_route_ip()
    except (OSError, ValueError):
        ip_address = UNKNOWN

    try:
        device_id = read_device_id()
    except (OSError, ValueError):
        device_id = NO_DEVICE_ID

    return SystemInfo(
        uptime=uptime,
        cpu_model=cpu_model,
        cpu_cores=cpu_cores,
        memory_usage=memory,
        disk_size=disk_size,
        disk_count=disk_count,
        current_time=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        ip_address=ip_address,
        device_id=device_id,
    )