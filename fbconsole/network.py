"""Network interface listing, connectivity probes and power/service commands."""

from __future__ import annotations

import ipaddress
import os
import socket
import struct
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Optional

PING_TIMEOUT = 20.0
POWER_COMMAND_TIMEOUT = 10.0
SERVICE_COMMAND_TIMEOUT = 30.0
PACKETS_PER_PROBE = 4

_SIOCGIFFLAGS = 0x8913
_SIOCGIFADDR = 0x8915
_IFF_UP = 0x1
_IFF_LOOPBACK = 0x8
_IFF_RUNNING = 0x40

_FORBIDDEN_SERVICE_CHARS = frozenset("; | & $ ` ( ) [ ] { } < > ? * \\ \n \r \t")
_MAX_SERVICE_NAME_LEN = 100

ProgressCallback = Callable[[str, int, int, str], None]


class SystemCommandError(Exception):
    """Raised when an external system command fails or times out."""


@dataclass
class NetworkInterface:
    """Addresses and state of one physical network interface."""

    name: str
    status: str
    mac: str
    ipv4_address: str = ""
    ipv6_addresses: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NetworkTestTarget:
    """A host probed by the connectivity test."""

    name: str
    host: str
    description: str


@dataclass
class NetworkTestResult:
    """Outcome of probing one target."""

    target: NetworkTestTarget
    success: bool = False
    packets_sent: int = PACKETS_PER_PROBE
    packets_recv: int = 0
    packet_loss: float = 0.0
    avg_latency: str = ""
    error_msg: str = ""


TEST_TARGETS: tuple[NetworkTestTarget, ...] = (
    NetworkTestTarget("字节跳动", "bytedance.com", "字节跳动官网"),
    NetworkTestTarget("百度", "baidu.com", "百度首页"),
    NetworkTestTarget("哔哩哔哩", "bilibili.com", "哔哩哔哩"),
    NetworkTestTarget("腾讯", "tencent.com", "腾讯官网"),
    NetworkTestTarget("阿里DNS", "223.5.5.5", "阿里云DNS服务器"),
)


def _ifreq(sock: socket.socket, request: int, name: str) -> bytes:
    import fcntl

    packed = struct.pack("256s", name.encode()[:15])
    return fcntl.ioctl(sock.fileno(), request, packed)


def _interface_flags(sock: socket.socket, name: str) -> int:
    return struct.unpack_from("H", _ifreq(sock, _SIOCGIFFLAGS, name), 16)[0]


def _interface_ipv4(sock: socket.socket, name: str) -> str:
    try:
        raw = _ifreq(sock, _SIOCGIFADDR, name)
    except OSError:
        return ""
    return socket.inet_ntoa(raw[20:24])


def _read_mac(name: str) -> str:
    try:
        with open(f"/sys/class/net/{name}/address", encoding="ascii") as fh:
            return fh.read().strip()
    except OSError:
        return ""


def _read_ipv6_addresses() -> dict[str, list[str]]:
    addresses: dict[str, list[str]] = {}
    try:
        with open("/proc/net/if_inet6", encoding="ascii") as fh:
            lines = fh.read().splitlines()
    except OSError:
        return addresses
    for line in lines:
        fields = line.split()
        if len(fields) < 6:
            continue
        try:
            address = ipaddress.IPv6Address(bytes.fromhex(fields[0]))
        except ValueError:
            continue
        addresses.setdefault(fields[5], []).append(str(address))
    return addresses


def get_network_interfaces() -> list[NetworkInterface]:
    """List physical, non-loopback interfaces with their addresses and state."""
    ipv6_by_name = _read_ipv6_addresses()
    interfaces: list[NetworkInterface] = []
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        for _, name in socket.if_nameindex():
            try:
                flags = _interface_flags(sock, name)
            except OSError:
                continue
            if flags & _IFF_LOOPBACK:
                continue
            if not os.path.exists(f"/sys/class/net/{name}/device"):
                continue

            ipv4 = _interface_ipv4(sock, name)
            if ipv4 and ipaddress.IPv4Address(ipv4).is_link_local:
                ipv4 = ""

            status = "Up" if flags & _IFF_UP else "Down"
            if flags & _IFF_RUNNING:
                status += ", Running"

            interfaces.append(
                NetworkInterface(
                    name=name,
                    status=status,
                    mac=_read_mac(name),
                    ipv4_address=ipv4,
                    ipv6_addresses=list(ipv6_by_name.get(name, [])),
                )
            )
    return interfaces


def check_connectivity(timeout: float = 5.0) -> bool:
    """Ping a public resolver once; True when it answers."""
    try:
        proc = subprocess.run(
            ["ping", "-c", "1", "-W", "3", "8.8.8.8"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise SystemCommandError("网络测试超时") from exc
    except OSError as exc:
        raise SystemCommandError(f"网络测试失败: {exc}") from exc
    return proc.returncode == 0


def _parse_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_ping_output(output: str, target: NetworkTestTarget) -> NetworkTestResult:
    """Build a result from the output of a successful ping run."""
    result = NetworkTestResult(target=target, success=True)

    if "packets transmitted" in output:
        for raw in output.split("\n"):
            line = raw.strip()

            if "packets transmitted" in line and "received" in line:
                fields = line.split()
                for index, item in enumerate(fields):
                    if item == "received," and index > 0:
                        try:
                            result.packets_recv = int(fields[index - 1])
                        except ValueError:
                            pass
                    if item.endswith("%") and "packet loss" in line:
                        try:
                            result.packet_loss = float(item[:-1])
                        except ValueError:
                            pass

            if "round-trip" in line and "=" in line:
                parts = line.split("=")
                values = parts[1].strip().split("/")
                if len(values) >= 2:
                    result.avg_latency = f"{_parse_float(values[1]):.1f} ms"

    if result.packet_loss > 0:
        if result.packet_loss == 100:
            result.success = False
            result.error_msg = "所有数据包丢失"
        else:
            result.error_msg = f"{result.packet_loss:.1f}% 数据包丢失"

    if not result.avg_latency:
        result.avg_latency = "N/A"
    return result


def probe_target(target: NetworkTestTarget) -> NetworkTestResult:
    """Ping one target four times and summarise the outcome."""
    try:
        proc = subprocess.run(
            ["ping", "-c", str(PACKETS_PER_PROBE), "-W", "3", target.host],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=PING_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return NetworkTestResult(target=target, packet_loss=100.0, error_msg="测试超时")
    except OSError as exc:
        return NetworkTestResult(
            target=target, packet_loss=100.0, error_msg=f"ping失败: {exc}"
        )

    if proc.returncode != 0:
        return NetworkTestResult(
            target=target,
            packet_loss=100.0,
            error_msg=f"ping失败: exit status {proc.returncode}",
        )

    output = proc.stdout or b""
    if isinstance(output, bytes):
        output = output.decode(errors="replace")
    return parse_ping_output(output, target)


def run_connectivity_tests(
    progress: Optional[ProgressCallback] = None,
) -> list[NetworkTestResult]:
    """Probe every test target in order, reporting progress before and after each."""
    total = len(TEST_TARGETS)
    results: list[NetworkTestResult] = []
    for current, target in enumerate(TEST_TARGETS, start=1):
        if progress is not None:
            progress(target.name, current, total, f"正在测试 {target.description}...")
        result = probe_target(target)
        results.append(result)
        if progress is not None:
            status = "成功" if result.success else "失败"
            progress(target.name, current, total, f"{target.description} 测试{status}")
    return results


def validate_service_name(service_name: str) -> str:
    """Reject service names that are empty, too long or carry shell characters."""
    if not service_name:
        raise ValueError("服务名称不能为空")
    if len(service_name) > _MAX_SERVICE_NAME_LEN:
        raise ValueError("服务名称过长")
    if any(ch in _FORBIDDEN_SERVICE_CHARS for ch in service_name):
        raise ValueError("服务名称包含非法字符")
    return service_name


def _require_root(message: str) -> None:
    if os.getuid() != 0:
        raise PermissionError(message)


def _run_command(args: list[str], timeout: float, timeout_message: str) -> None:
    try:
        proc = subprocess.run(args, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise SystemCommandError(timeout_message) from exc
    except OSError as exc:
        raise SystemCommandError(str(exc)) from exc
    if proc.returncode != 0:
        raise SystemCommandError(f"exit status {proc.returncode}")


def reboot_system() -> None:
    """Reboot the machine; requires root."""
    _require_root("需要root权限执行重启操作")
    _run_command(["reboot"], POWER_COMMAND_TIMEOUT, "重启命令执行超时")


def shutdown_system() -> None:
    """Power the machine off; requires root."""
    _require_root("需要root权限执行关机操作")
    _run_command(["shutdown", "-h", "now"], POWER_COMMAND_TIMEOUT, "关机命令执行超时")


def restart_system_service(service_name: str) -> None:
    """Restart a systemd service; requires root."""
    _require_root("需要root权限重启系统服务")
    validate_service_name(service_name)
    _run_command(
        ["systemctl", "restart", service_name], SERVICE_COMMAND_TIMEOUT, "重启服务超时"
    )