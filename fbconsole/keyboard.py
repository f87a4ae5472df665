"""Raw-mode terminal keyboard input with blocking, polling and timed reads."""

from __future__ import annotations

import os
import select
import sys
import termios
import threading
import time
from typing import Optional

DEFAULT_DEVICE = "/dev/stdin"
DEFAULT_TTY = "/dev/tty"
DEFAULT_WAIT_TIMEOUT = 30.0
ENTER_KEYS = frozenset({ord("\n"), ord("\r")})

HIDE_CURSOR = "\033[?25l"
SHOW_CURSOR = "\033[?25h"

_POLL_INTERVAL = 0.01
_CANCEL_POLL = 0.05

_LFLAG_CLEAR = (
    termios.ICANON
    | termios.ECHO
    | termios.ECHOE
    | termios.ECHOK
    | termios.ECHONL
    | getattr(termios, "ECHOPRT", 0)
    | getattr(termios, "ECHOKE", 0)
    | termios.ICRNL
)
_IFLAG_CLEAR = termios.IXON | termios.IXOFF | termios.IXANY

_MENU_KEYS = {
    ord("1"): 1,
    ord("2"): 2,
    ord("3"): 3,
    ord("4"): 4,
    ord("5"): 5,
    ord("q"): -1,
    ord("Q"): -1,
    ord("\n"): 0,
    ord("\r"): 0,
}


class KeyboardError(Exception):
    """Raised when the terminal cannot be configured or read."""


def menu_choice_for_key(key: int) -> Optional[int]:
    """Map a key to a menu choice: 1-5, -1 for q/Q, 0 for Enter, None otherwise."""
    return _MENU_KEYS.get(key)


class KeyboardInput:
    """Reads single key presses from a terminal switched into raw mode."""

    def __init__(self, device_path: str = DEFAULT_DEVICE, tty_path: str = DEFAULT_TTY) -> None:
        self._lock = threading.Lock()
        self._closed = False
        self._restored = False
        try:
            self._fd: Optional[int] = os.open(device_path, os.O_RDONLY | os.O_NOCTTY)
        except OSError as exc:
            raise KeyboardError(f"无法打开标准输入设备: {exc}") from exc

        try:
            self._tty_fd: Optional[int] = os.open(tty_path, os.O_WRONLY | os.O_NOCTTY)
            self._tty_is_stdout = False
        except OSError:
            self._tty_fd = None
            self._tty_is_stdout = True

        try:
            self._old_attrs = self._set_raw_mode()
        except BaseException:
            os.close(self._fd)
            self._fd = None
            if self._tty_fd is not None:
                os.close(self._tty_fd)
                self._tty_fd = None
            raise

    @property
    def closed(self) -> bool:
        return self._closed

    def _set_raw_mode(self) -> list:
        assert self._fd is not None
        try:
            old = termios.tcgetattr(self._fd)
        except termios.error as exc:
            raise KeyboardError(f"无法获取终端属性: {exc}") from exc

        new = [list(item) if isinstance(item, list) else item for item in old]
        new[0] &= ~_IFLAG_CLEAR
        new[3] &= ~_LFLAG_CLEAR
        new[6][termios.VMIN] = 1
        new[6][termios.VTIME] = 0
        try:
            termios.tcsetattr(self._fd, termios.TCSANOW, new)
        except termios.error as exc:
            raise KeyboardError(f"无法设置终端属性: {exc}") from exc

        try:
            self._write_tty(HIDE_CURSOR)
        except OSError as exc:
            raise KeyboardError(f"隐藏光标失败: {exc}") from exc
        return old

    def _write_tty(self, sequence: str) -> None:
        if self._tty_fd is not None:
            os.write(self._tty_fd, sequence.encode("ascii"))
        elif self._tty_is_stdout:
            sys.stdout.write(sequence)
            sys.stdout.flush()

    def _open_fd(self) -> int:
        if self._closed or self._fd is None:
            raise KeyboardError("键盘设备已关闭")
        if self._fd < 0:
            raise KeyboardError("无效的文件描述符")
        return self._fd

    def read_key(self) -> int:
        """Block until one byte is available and return it."""
        with self._lock:
            fd = self._open_fd()
            try:
                data = os.read(fd, 1)
            except OSError as exc:
                raise KeyboardError(f"读取键盘输入失败: {exc}") from exc
            if not data:
                raise KeyboardError("no data read")
            return data[0]

    def _poll(self, timeout: float) -> Optional[int]:
        fd = self._open_fd()
        try:
            ready, _, _ = select.select([fd], [], [], timeout)
        except InterruptedError:
            return None
        except (OSError, ValueError) as exc:
            raise KeyboardError(f"select调用失败: {exc}") from exc
        if not ready:
            return None
        try:
            data = os.read(fd, 1)
        except OSError as exc:
            raise KeyboardError(f"读取数据失败: {exc}") from exc
        return data[0] if data else None

    def read_key_nonblocking(self) -> Optional[int]:
        """Return a pending key, or None when no input is waiting."""
        with self._lock:
            return self._poll(0)

    def read_key_with_timeout(self, timeout: float) -> Optional[int]:
        """Wait up to timeout seconds for a key; None on timeout or interruption."""
        with self._lock:
            return self._poll(max(0.0, timeout))

    def wait_for_key(self, *keys: int, timeout: float = DEFAULT_WAIT_TIMEOUT) -> int:
        """Wait for any key, or for one of keys when given; raise on timeout."""
        wanted = frozenset(keys)
        start = time.monotonic()
        while True:
            if time.monotonic() - start > timeout:
                raise KeyboardError("等待键盘输入超时")
            key = self.read_key_nonblocking()
            if key is not None and (not wanted or key in wanted):
                return key
            time.sleep(_POLL_INTERVAL)

    def wait_for_enter(self) -> int:
        """Wait for Enter (LF or CR) for up to the default timeout."""
        return self.wait_for_key(*ENTER_KEYS, timeout=DEFAULT_WAIT_TIMEOUT)

    def wait_for_enter_until(self, stop_event: threading.Event) -> int:
        """Wait for Enter, giving up with an error once stop_event is set."""
        start = time.monotonic()
        while True:
            if stop_event.is_set():
                raise KeyboardError("等待已取消")
            if time.monotonic() - start > DEFAULT_WAIT_TIMEOUT:
                raise KeyboardError("等待键盘输入超时")
            key = self.read_key_with_timeout(_CANCEL_POLL)
            if key is not None and key in ENTER_KEYS:
                return key

    def wait_for_menu_choice(self, timeout: float = DEFAULT_WAIT_TIMEOUT) -> int:
        """Wait for a menu key and return its choice (see menu_choice_for_key)."""
        start = time.monotonic()
        while True:
            if time.monotonic() - start > timeout:
                raise KeyboardError("等待菜单选择超时")
            key = self.read_key_nonblocking()
            if key is not None:
                choice = menu_choice_for_key(key)
                if choice is not None:
                    return choice
            time.sleep(_POLL_INTERVAL)

    def _restore_unlocked(self) -> None:
        if self._fd is None or self._restored:
            return
        if self._fd < 0:
            raise KeyboardError("无效的文件描述符")
        try:
            self._write_tty(SHOW_CURSOR)
        except OSError:
            pass
        try:
            termios.tcsetattr(self._fd, termios.TCSANOW, self._old_attrs)
        except termios.error as exc:
            raise KeyboardError(f"failed to restore terminal: {exc}") from exc
        self._restored = True

    def restore_terminal(self) -> None:
        """Show the cursor and put back the original terminal attributes."""
        with self._lock:
            self._restore_unlocked()

    def close(self) -> None:
        """Restore the terminal and close the devices; safe to call twice."""
        with self._lock:
            if self._closed:
                return
            errors: list[str] = []
            if not self._restored:
                try:
                    self._restore_unlocked()
                except KeyboardError as exc:
                    errors.append(f"恢复终端状态失败: {exc}")
            if self._fd is not None:
                try:
                    os.close(self._fd)
                except OSError as exc:
                    errors.append(f"关闭输入设备失败: {exc}")
                self._fd = None
            if self._tty_fd is not None:
                try:
                    os.close(self._tty_fd)
                except OSError as exc:
                    errors.append(f"关闭TTY设备失败: {exc}")
                self._tty_fd = None
            self._closed = True
            if errors:
                raise KeyboardError("; ".join(errors))

    def __enter__(self) -> "KeyboardInput":
        return self

    def __exit__(self, *args) -> None:
        self.close()