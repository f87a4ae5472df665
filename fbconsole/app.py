"""The status console application: main loop, menus, signals and command line."""

from __future__ import annotations

import argparse
import logging
import queue
import signal
import sys
import threading
import time
from typing import Callable, Optional, Sequence

from .config import Config
from .fontrender import FontRenderer
from .framebuffer import FrameBuffer, get_best_framebuffer_device
from .keyboard import KeyboardError, KeyboardInput
from .logfiles import init_logging
from .menu import MenuRenderer
from .network import (
    NetworkTestResult,
    get_network_interfaces,
    reboot_system,
    run_connectivity_tests,
    shutdown_system,
)
from .sysinfo import get_system_info

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 5.0
FONT_SIZE = 14.0
CONFIRM_DELAY = 2.0

_LISTEN_TIMEOUT = 0.1
_QUEUE_POLL = 0.05
_LISTENER_JOIN = 1.0

KEY_CTRL_C = 3
KEY_CTRL_D = 4
KEY_CTRL_Z = 26
KEY_CTRL_BACKSLASH = 28
KEY_ESC = 27
ENTER_KEYS = frozenset({ord("\n"), ord("\r")})
CONTROL_KEYS = {
    KEY_CTRL_C: "Ctrl+C",
    KEY_CTRL_Z: "Ctrl+Z",
    KEY_CTRL_BACKSLASH: "Ctrl+\\",
    KEY_CTRL_D: "Ctrl+D",
}
_MENU_DIGITS = {ord(str(n)): n for n in range(1, 6)}
_BACK_KEYS = frozenset({ord("q"), ord("Q"), KEY_ESC})
_CONFIRM_KEYS = frozenset({ord("y"), ord("Y")})
_QUIET_ERRORS = ("interrupted system call", "select调用失败")

SERVICE_MENU_MESSAGE = (
    "系统服务管理\n\n"
    "此功能暂时未实现\n"
    "将来可以添加以下功能：\n"
    "- 重启网络服务\n"
    "- 重启SSH服务\n"
    "- 重启防火墙服务\n"
    "- 查看服务状态\n\n"
    "按任意键返回"
)
REBOOT_PROMPT = "确认要重启设备吗？\n\n按 'y' 确认重启\n按任意其他键取消"
SHUTDOWN_PROMPT = "确认要关机吗？\n\n按 'y' 确认关机\n按任意其他键取消"

_SIGNALS = tuple(
    getattr(signal, name)
    for name in ("SIGINT", "SIGTERM", "SIGHUP", "SIGTSTP", "SIGQUIT")
    if hasattr(signal, name)
)


def format_network_test_results(results: Sequence[NetworkTestResult]) -> str:
    """Describe each connectivity probe and summarise the overall state."""
    parts = ["=== 网络连通性测试结果 ===\n\n"]
    success_count = 0
    for result in results:
        status = "异常"
        if result.success and result.packet_loss == 0:
            status = "正常"
            success_count += 1
        elif result.success and result.packet_loss > 0:
            status = "部分正常"

        parts.append(f"• {result.target.name} ({result.target.host}):\n")
        parts.append(f"  状态: {status}\n")
        if result.success or result.packets_recv > 0:
            parts.append(
                f"  数据包: 发送{result.packets_sent} 接收{result.packets_recv} "
                f"丢失{result.packet_loss:.1f}%\n"
            )
            if result.avg_latency and result.avg_latency != "N/A":
                parts.append(f"  平均延迟: {result.avg_latency}\n")
        if result.error_msg:
            parts.append(f"  详情: {result.error_msg}\n")
        parts.append("\n")

    parts.append("----------------------------------------\n")
    if success_count == len(results):
        parts.append("✓ 网络连接状态: 良好\n所有测试目标均可正常访问")
    elif success_count > 0:
        parts.append(
            f"⚠ 网络连接状态: 部分异常\n可访问 {success_count}/{len(results)} 个测试目标"
        )
    else:
        parts.append("✗ 网络连接状态: 异常\n所有测试目标均无法访问")
    parts.append("\n\n按任意键返回")
    return "".join(parts)


def usage_text(prog: str) -> str:
    """The command-line help text."""
    return (
        "Go Framebuffer Console - 系统状态监控应用\n\n"
        "用法:\n"
        f"  {prog} [选项]\n\n"
        "选项:\n"
        "  -d    禁用Ctrl+C退出功能，使程序持续运行（默认启用Ctrl+C退出）\n"
        "  -h    显示此帮助信息\n\n"
        "示例:\n"
        f"  {prog}           # 正常运行，支持Ctrl+C退出\n"
        f"  {prog} -d        # 运行并禁用Ctrl+C退出功能\n"
        f"  {prog} -h        # 显示帮助信息\n\n"
        "说明:\n"
        "  - 默认情况下，可以使用Ctrl+C或在配置菜单中退出程序\n"
        "  - 使用-d参数后，只能通过配置菜单退出程序\n"
        "  - 程序每5秒自动刷新系统状态信息\n"
        "  - 按回车键进入配置菜单进行系统管理\n"
    )


def build_parser() -> argparse.ArgumentParser:
    """Parser for the -d and -h options."""
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-d",
        dest="disable_ctrl_c",
        action="store_true",
        help="禁用Ctrl+C退出功能，使程序持续运行",
    )
    parser.add_argument("-h", dest="show_help", action="store_true", help="显示帮助信息")
    return parser


class Application:
    """Ties the display, font, keyboard and menus into the running console."""

    def __init__(self, disable_ctrl_c, framebuffer, font_renderer, keyboard) -> None:
        self.disable_ctrl_c = bool(disable_ctrl_c)
        self.fb = framebuffer
        self.font_renderer = font_renderer
        self.keyboard = keyboard
        self.menu = MenuRenderer(framebuffer, font_renderer)
        self._lock = threading.RLock()
        self._running = False
        self._stop = threading.Event()
        self._keys: "queue.Queue[int]" = queue.Queue(maxsize=1)
        self._listener: Optional[threading.Thread] = None
        self._next_refresh = time.monotonic() + REFRESH_INTERVAL

    @classmethod
    def create(cls, disable_ctrl_c: bool) -> "Application":
        """Open the framebuffer, load the font and put the terminal in raw mode."""
        config = Config.default()
        try:
            fb = FrameBuffer(get_best_framebuffer_device())
        except Exception as exc:
            raise RuntimeError(f"failed to initialize framebuffer: {exc}") from exc

        width, height = fb.dimensions
        logger.info("检测到屏幕分辨率: %d x %d", width, height)
        config.font_size = FONT_SIZE
        logger.info("使用固定字体大小: %.2f", config.font_size)

        try:
            font = FontRenderer(config.font_path, config.font_size, config.dpi)
        except Exception as exc:
            fb.close()
            raise RuntimeError(f"failed to initialize font renderer: {exc}") from exc

        try:
            keyboard = KeyboardInput()
        except Exception as exc:
            fb.close()
            raise RuntimeError(f"failed to initialize keyboard: {exc}") from exc

        return cls(disable_ctrl_c, fb, font, keyboard)

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _set_running(self, value: bool) -> None:
        with self._lock:
            self._running = value

    def stop(self) -> None:
        """Ask the main loop and the key listener to finish."""
        self._set_running(False)
        self._stop.set()

    # keyboard plumbing

    def _ensure_listener(self) -> None:
        with self._lock:
            if self._listener is not None and self._listener.is_alive():
                return
            self._listener = threading.Thread(
                target=self._listen, name="keyboard-listener", daemon=True
            )
            self._listener.start()

    def _listen(self) -> None:
        while not self._stop.is_set():
            if getattr(self.keyboard, "closed", False):
                return
            try:
                key = self.keyboard.read_key_with_timeout(_LISTEN_TIMEOUT)
            except KeyboardError as exc:
                if self._stop.is_set():
                    return
                if not any(text in str(exc) for text in _QUIET_ERRORS):
                    logger.warning("读取键盘输入时发生错误: %s", exc)
                time.sleep(_LISTEN_TIMEOUT)
                continue
            except Exception:
                logger.exception("键盘监听线程异常")
                return
            if key is None:
                continue
            while not self._stop.is_set():
                try:
                    self._keys.put(key, timeout=_QUEUE_POLL)
                    break
                except queue.Full:
                    continue

    def _next_key(self) -> Optional[int]:
        """Wait for the next key press; None once the application is stopping."""
        self._ensure_listener()
        while not self._stop.is_set():
            try:
                return self._keys.get(timeout=_QUEUE_POLL)
            except queue.Empty:
                continue
        return None

    def _wait_any_key(self, location: str) -> None:
        key = self._next_key()
        if key is not None:
            self.handle_control_key(key, location)

    # main loop

    def run(self) -> None:
        """Show the status page, refresh it every five seconds and react to keys."""
        self._set_running(True)
        self._ensure_listener()
        try:
            self._show_main_menu()
        except Exception as exc:
            raise RuntimeError(f"初始显示主菜单失败: {exc}") from exc

        logger.info("系统状态监控已启动，每5秒自动刷新")
        self._next_refresh = time.monotonic() + REFRESH_INTERVAL

        while not self._stop.is_set():
            remaining = self._next_refresh - time.monotonic()
            try:
                key = self._keys.get(timeout=max(0.0, min(_QUEUE_POLL, remaining)))
            except queue.Empty:
                if time.monotonic() >= self._next_refresh:
                    self._next_refresh += REFRESH_INTERVAL
                    if self.running:
                        self.menu.invalidate_cache()
                        try:
                            self._show_main_menu()
                        except Exception as exc:
                            logger.warning("自动刷新系统状态失败: %s", exc)
                continue
            if self.running:
                self.handle_main_key(key)

        logger.info("接收到退出信号，程序即将退出")

    def handle_main_key(self, key: int) -> None:
        """React to a key on the main page: Enter opens the menu, control keys quit."""
        if key in ENTER_KEYS:
            logger.info("检测到回车键，进入配置菜单")
            try:
                self.enter_config_menu()
            except Exception as exc:
                logger.warning("配置菜单操作失败: %s", exc)
            self.menu.invalidate_cache()
            try:
                self._show_main_menu()
            except Exception as exc:
                logger.warning("返回主菜单时刷新失败: %s", exc)
            return

        name = CONTROL_KEYS.get(key)
        if name is None:
            return
        if self.disable_ctrl_c:
            logger.info("在主页面检测到%s，但退出功能已禁用", name)
        else:
            logger.info("在主页面检测到%s，程序即将退出", name)
            self.stop()

    def handle_control_key(self, key: int, location: str) -> bool:
        """Quit on a control key unless disabled; True when the caller should return."""
        name = CONTROL_KEYS.get(key)
        if name is None:
            return False
        if self.disable_ctrl_c:
            logger.info("在%s检测到%s，但退出功能已禁用", location, name)
            return False
        logger.info("在%s检测到%s，程序即将退出", location, name)
        self.stop()
        return True

    # pages

    def _show_main_menu(self) -> None:
        self.menu.render_main_menu(get_system_info())

    def enter_config_menu(self) -> None:
        """Run the configuration menu until q, Esc or a quitting control key."""
        self._set_running(False)
        logger.info("已进入配置菜单，暂停主界面自动刷新")
        try:
            while True:
                try:
                    self.menu.render_config_menu()
                except Exception as exc:
                    raise RuntimeError(f"显示配置菜单失败: {exc}") from exc

                key = self._next_key()
                if key is None:
                    return
                if self.handle_control_key(key, "配置菜单"):
                    return
                if key in _BACK_KEYS:
                    return
                choice = _MENU_DIGITS.get(key)
                if choice is None:
                    continue
                try:
                    self.handle_menu_choice(choice)
                except Exception as exc:
                    logger.warning("处理菜单选择失败: %s", exc)
                    self._show_message(f"操作失败: {exc}")
        finally:
            if not self._stop.is_set():
                self._set_running(True)
            self._next_refresh = time.monotonic() + REFRESH_INTERVAL
            logger.info("已退出配置菜单，恢复主界面自动刷新")

    def handle_menu_choice(self, choice: int) -> None:
        """Carry out one configuration menu entry (1-5)."""
        actions: dict[int, Callable[[], None]] = {
            1: self._show_network_info,
            2: self._show_service_menu,
            3: self._test_network_connectivity,
            4: lambda: self._confirm(REBOOT_PROMPT, "正在重启设备...", reboot_system, "重启确认页面"),
            5: lambda: self._confirm(SHUTDOWN_PROMPT, "正在关机...", shutdown_system, "关机确认页面"),
        }
        action = actions.get(choice)
        if action is None:
            self._show_message("无效选项，请重新选择")
        else:
            action()

    def _show_network_info(self) -> None:
        try:
            interfaces = get_network_interfaces()
        except OSError as exc:
            self._show_message(f"获取网卡信息失败: {exc}")
            return
        self.menu.render_network_info(interfaces)
        self._wait_any_key("网卡信息页面")

    def _show_service_menu(self) -> None:
        self.menu.render_message(SERVICE_MENU_MESSAGE)
        self._wait_any_key("系统服务菜单页面")

    def _test_network_connectivity(self) -> None:
        self.menu.render_message("正在初始化网络连通性测试...\n\n请稍候...")

        def progress(target: str, current: int, total: int, message: str) -> None:
            try:
                self.menu.render_message(
                    f"网络连通性测试进度: {current}/{total}\n\n当前测试: {target}\n{message}"
                )
            except Exception as exc:
                logger.warning("显示测试进度失败: %s", exc)

        try:
            results = run_connectivity_tests(progress)
        except Exception as exc:
            self.menu.render_message(f"网络测试执行失败: {exc}\n\n按任意键返回")
            self._next_key()
            return

        self.menu.render_message(format_network_test_results(results))
        self._wait_any_key("网络测试结果页面")

    def _confirm(
        self, prompt: str, progress: str, action: Callable[[], None], location: str
    ) -> None:
        self.menu.render_message(prompt)
        key = self._next_key()
        if key is None or self.handle_control_key(key, location):
            return
        if key in _CONFIRM_KEYS:
            self.menu.render_message(progress)
            time.sleep(CONFIRM_DELAY)
            action()

    def _show_message(self, message: str) -> None:
        self.menu.render_message(message + "\n\n按任意键继续")
        self._wait_any_key("消息页面")

    # lifecycle

    def install_signal_handlers(self) -> None:
        """Stop on termination signals, or ignore them when quitting is disabled."""

        def handler(signum, frame) -> None:
            name = signal.Signals(signum).name
            if self.disable_ctrl_c:
                logger.info("接收到信号: %s，但退出功能已禁用，继续运行", name)
                return
            logger.info("接收到信号: %s，开始优雅退出", name)
            self.stop()

        for sig in _SIGNALS:
            signal.signal(sig, handler)

    def close(self) -> None:
        """Stop everything, restore the terminal and release the devices."""
        self.stop()
        listener = self._listener
        if listener is not None and listener is not threading.current_thread():
            listener.join(_LISTENER_JOIN)

        with self._lock:
            if self.keyboard is not None:
                try:
                    self.keyboard.restore_terminal()
                except Exception as exc:
                    logger.warning("恢复终端状态失败: %s", exc)
                try:
                    self.keyboard.close()
                except Exception as exc:
                    logger.warning("关闭键盘设备失败: %s", exc)
                self.keyboard = None
            if self.fb is not None:
                try:
                    self.fb.close()
                except Exception as exc:
                    logger.warning("关闭帧缓冲区失败: %s", exc)
                self.fb = None
            self._running = False

    def __enter__(self) -> "Application":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    prog = sys.argv[0] if sys.argv and sys.argv[0] else "fbconsole"
    args = build_parser().parse_args(argv)
    if args.show_help:
        print(usage_text(prog), end="")
        return 0

    init_logging()
    logger.info("程序启动，参数: 禁用Ctrl+C = %s", args.disable_ctrl_c)

    try:
        app = Application.create(args.disable_ctrl_c)
    except Exception as exc:
        logger.critical("应用程序初始化失败: %s", exc)
        return 1
    logger.info("应用程序初始化成功，禁用Ctrl+C = %s", app.disable_ctrl_c)

    try:
        app.install_signal_handlers()
        app.run()
    except Exception as exc:
        logger.error("应用程序运行错误: %s", exc)
    finally:
        app.close()
    return 0