import subprocess
from unittest.mock import patch

import pytest

from fbconsole.network import (
    NetworkTestTarget,
    SystemCommandError,
    check_connectivity,
    parse_ping_output,
    probe_target,
    reboot_system,
    restart_system_service,
    run_connectivity_tests,
    shutdown_system,
    validate_service_name,
)

TARGET = NetworkTestTarget("百度", "baidu.com", "百度首页")

GOOD_OUTPUT = (
    "PING baidu.com (10.0.0.1) 56(84) bytes of data.\n"
    "\n"
    "--- baidu.com ping statistics ---\n"
    "4 packets transmitted, 4 received, 0% packet loss, time 3004ms\n"
    "round-trip min/avg/max/stddev = 1.000/2.000/3.000/0.100 ms\n"
)


def _completed(returncode, stdout=b""):
    return subprocess.CompletedProcess(args=["ping"], returncode=returncode, stdout=stdout)


def test_parse_full_success():
    result = parse_ping_output(GOOD_OUTPUT, TARGET)
    assert result.success is True
    assert result.packets_sent == 4
    assert result.packets_recv == 4
    assert result.packet_loss == 0
    assert result.avg_latency == "2.0 ms"
    assert result.error_msg == ""
    assert result.target == TARGET


def test_parse_partial_loss():
    output = "4 packets transmitted, 3 received, 25% packet loss, time 3004ms\n"
    result = parse_ping_output(output, TARGET)
    assert result.success is True
    assert result.packets_recv == 3
    assert result.packet_loss == 25.0
    assert result.error_msg == "25.0% 数据包丢失"
    assert result.avg_latency == "N/A"


def test_parse_total_loss():
    output = "4 packets transmitted, 0 received, 100% packet loss, time 3004ms\n"
    result = parse_ping_output(output, TARGET)
    assert result.success is False
    assert result.packets_recv == 0
    assert result.error_msg == "所有数据包丢失"


def test_parse_without_statistics():
    result = parse_ping_output("nothing useful here", TARGET)
    assert result.success is True
    assert result.packets_recv == 0
    assert result.avg_latency == "N/A"


def test_probe_timeout():
    with patch(
        "fbconsole.network.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="ping", timeout=20),
    ):
        result = probe_target(TARGET)
    assert result.success is False
    assert result.error_msg == "测试超时"
    assert result.packet_loss == 100.0


def test_probe_nonzero_exit():
    with patch("fbconsole.network.subprocess.run", return_value=_completed(1)):
        result = probe_target(TARGET)
    assert result.success is False
    assert result.error_msg.startswith("ping失败")
    assert result.packet_loss == 100.0


def test_probe_missing_binary():
    with patch("fbconsole.network.subprocess.run", side_effect=FileNotFoundError("ping")):
        result = probe_target(TARGET)
    assert result.success is False
    assert result.error_msg.startswith("ping失败")


def test_probe_success_parses_output():
    with patch(
        "fbconsole.network.subprocess.run",
        return_value=_completed(0, GOOD_OUTPUT.encode()),
    ) as run:
        result = probe_target(TARGET)
    assert result.success is True
    assert result.packets_recv == 4
    assert run.call_args.args[0][-1] == "baidu.com"


def test_run_connectivity_tests_reports_progress():
    calls = []
    with patch(
        "fbconsole.network.subprocess.run",
        return_value=_completed(0, GOOD_OUTPUT.encode()),
    ):
        results = run_connectivity_tests(lambda *args: calls.append(args))
    assert len(results) == 5
    assert all(r.success for r in results)
    assert results[-1].target.host == "223.5.5.5"
    assert len(calls) == 2 * len(results)
    assert [c[1] for c in calls] == [1, 1, 2, 2, 3, 3, 4, 4, 5, 5]
    assert {c[2] for c in calls} == {5}
    assert calls[1][3].endswith("测试成功")


def test_run_connectivity_tests_reports_failure():
    calls = []
    with patch("fbconsole.network.subprocess.run", return_value=_completed(2)):
        results = run_connectivity_tests(lambda *args: calls.append(args))
    assert not any(r.success for r in results)
    assert all(c[3].endswith("测试失败") for c in calls[1::2])


@pytest.mark.parametrize("name", ["", "x" * 101, "ssh;reboot", "a b", "svc$", "x`y"])
def test_validate_service_name_rejects(name):
    with pytest.raises(ValueError):
        validate_service_name(name)


def test_validate_service_name_accepts():
    assert validate_service_name("sshd") == "sshd"


@pytest.mark.parametrize("func", [reboot_system, shutdown_system])
def test_power_commands_need_root(func):
    with patch("fbconsole.network.os.getuid", return_value=1000, create=True):
        with pytest.raises(PermissionError):
            func()


def test_restart_service_needs_root():
    with patch("fbconsole.network.os.getuid", return_value=1000, create=True):
        with pytest.raises(PermissionError):
            restart_system_service("sshd")


def test_restart_service_rejects_bad_name_as_root():
    with patch("fbconsole.network.os.getuid", return_value=0, create=True):
        with pytest.raises(ValueError):
            restart_system_service("sshd; reboot")


def test_restart_service_runs_systemctl():
    with patch("fbconsole.network.os.getuid", return_value=0, create=True), patch(
        "fbconsole.network.subprocess.run", return_value=_completed(0)
    ) as run:
        outcome = restart_system_service("sshd")
    assert outcome is None
    assert run.call_count == 1
    assert run.call_args.args[0] == ["systemctl", "restart", "sshd"]


def test_restart_service_failure_raises():
    with patch("fbconsole.network.os.getuid", return_value=0, create=True), patch(
        "fbconsole.network.subprocess.run", return_value=_completed(5)
    ):
        with pytest.raises(SystemCommandError):
            restart_system_service("sshd")


def test_shutdown_timeout_raises():
    with patch("fbconsole.network.os.getuid", return_value=0, create=True), patch(
        "fbconsole.network.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="shutdown", timeout=10),
    ):
        with pytest.raises(SystemCommandError, match="关机命令执行超时"):
            shutdown_system()


def test_check_connectivity_results():
    with patch("fbconsole.network.subprocess.run", return_value=_completed(0)):
        assert check_connectivity() is True
    with patch("fbconsole.network.subprocess.run", return_value=_completed(1)):
        assert check_connectivity() is False


def test_check_connectivity_timeout():
    with patch(
        "fbconsole.network.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="ping", timeout=5),
    ):
        with pytest.raises(SystemCommandError, match="网络测试超时"):
            check_connectivity(5)