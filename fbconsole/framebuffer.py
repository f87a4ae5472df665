"""Linux framebuffer device access: screen info, pixel encoding and drawing."""

from __future__ import annotations

import mmap
import os
import re
import struct
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

from PIL import Image

FBIOGET_VSCREENINFO = 0x4600
FBIOGET_FSCREENINFO = 0x4602

FIX_SCREENINFO_FORMAT = "@16sLIIIIHHHILII3H"
VAR_SCREENINFO_FORMAT = "@40I"

FRAMEBUFFER_DEVICES = ("/dev/fb0", "/dev/fb1", "/dev/fb2")
DEFAULT_DEVICE = "/dev/fb0"
VIRTUAL_SIZE_PATH = "/sys/class/graphics/fb0/virtual_size"
DEFAULT_RESOLUTION = (1920, 1080)

_MAX_SCREEN_BYTES = 1024 * 1024 * 1024
_IOCTL_BUFFER_SIZE = 256
_SUPPORTED_BPP = (16, 24, 32)
_INT_RE = re.compile(r"[+-]?\d+")


class FrameBufferError(Exception):
    """Raised when the framebuffer device cannot be opened, queried or released."""


@dataclass(frozen=True)
class FixedScreenInfo:
    """Fixed hardware parameters of a framebuffer (fb_fix_screeninfo)."""

    id: str
    smem_start: int
    smem_len: int
    fb_type: int
    type_aux: int
    visual: int
    xpanstep: int
    ypanstep: int
    ywrapstep: int
    line_length: int
    mmio_start: int
    mmio_len: int
    accel: int
    reserved: tuple[int, ...] = (0, 0, 0)

    @classmethod
    def from_bytes(cls, data: bytes) -> "FixedScreenInfo":
        """Decode the structure from native-layout bytes."""
        size = struct.calcsize(FIX_SCREENINFO_FORMAT)
        if len(data) < size:
            raise FrameBufferError(f"固定屏幕信息长度不足: {len(data)} < {size}")
        raw = struct.unpack_from(FIX_SCREENINFO_FORMAT, data)
        name = raw[0].split(b"\0", 1)[0].decode("ascii", errors="replace")
        return cls(name, *raw[1:13], reserved=tuple(raw[13:16]))


@dataclass(frozen=True)
class VarScreenInfo:
    """Configurable display parameters of a framebuffer (fb_var_screeninfo)."""

    xres: int
    yres: int
    xres_virtual: int
    yres_virtual: int
    xoffset: int
    yoffset: int
    bits_per_pixel: int
    grayscale: int
    red_offset: int
    red_length: int
    red_msb_right: int
    green_offset: int
    green_length: int
    green_msb_right: int
    blue_offset: int
    blue_length: int
    blue_msb_right: int
    transp_offset: int
    transp_length: int
    transp_msb_right: int
    nonstd: int
    activate: int
    height: int
    width: int
    accel_flags: int
    pixclock: int
    left_margin: int
    right_margin: int
    upper_margin: int
    lower_margin: int
    hsync_len: int
    vsync_len: int
    sync: int
    vmode: int
    rotate: int
    reserved: tuple[int, ...] = (0, 0, 0, 0, 0)

    @classmethod
    def from_bytes(cls, data: bytes) -> "VarScreenInfo":
        """Decode the structure from native-layout bytes."""
        size = struct.calcsize(VAR_SCREENINFO_FORMAT)
        if len(data) < size:
            raise FrameBufferError(f"可变屏幕信息长度不足: {len(data)} < {size}")
        raw = struct.unpack_from(VAR_SCREENINFO_FORMAT, data)
        return cls(*raw[:35], reserved=tuple(raw[35:]))


def encode_pixel(bpp: int, color: Sequence[int]) -> bytes:
    """Encode an RGB or RGBA colour as framebuffer bytes; empty for unsupported depths.

    An alpha component is premultiplied into the colour channels.
    """
    r, g, b = color[0], color[1], color[2]
    if len(color) > 3:
        a = color[3]
        r, g, b = ((c * a + 127) // 255 for c in (r, g, b))
    if bpp == 16:
        pixel = ((r & 0xF8) << 8) | ((g & 0xFC) << 3) | ((b & 0xF8) >> 3)
        return bytes((pixel & 0xFF, pixel >> 8))
    if bpp == 24:
        return bytes((b, g, r))
    if bpp == 32:
        return bytes((b, g, r, 0))
    return b""


def _flatten_to_rgb(image: Image.Image) -> Image.Image:
    rgba = image.convert("RGBA")
    black = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
    return Image.alpha_composite(black, rgba).convert("RGB")


def _encode_row(bpp: int, rgb: bytes) -> bytes:
    count = len(rgb) // 3
    reds, greens, blues = rgb[0::3], rgb[1::3], rgb[2::3]
    if bpp == 32:
        out = bytearray(count * 4)
        out[0::4], out[1::4], out[2::4] = blues, greens, reds
        return bytes(out)
    if bpp == 24:
        out = bytearray(count * 3)
        out[0::3], out[1::3], out[2::3] = blues, greens, reds
        return bytes(out)
    return b"".join(encode_pixel(bpp, px) for px in zip(reds, greens, blues))


def _query_screen_info(fd: int) -> tuple[FixedScreenInfo, VarScreenInfo]:
    import fcntl

    try:
        fixed_raw = fcntl.ioctl(fd, FBIOGET_FSCREENINFO, bytes(_IOCTL_BUFFER_SIZE))
    except OSError as exc:
        raise FrameBufferError(f"无法获取固定屏幕信息: {exc}") from exc
    try:
        var_raw = fcntl.ioctl(fd, FBIOGET_VSCREENINFO, bytes(_IOCTL_BUFFER_SIZE))
    except OSError as exc:
        raise FrameBufferError(f"无法获取可变屏幕信息: {exc}") from exc
    return FixedScreenInfo.from_bytes(fixed_raw), VarScreenInfo.from_bytes(var_raw)


def _map_memory(fd: int, size: int) -> mmap.mmap:
    if size <= 0 or size > _MAX_SCREEN_BYTES:
        raise FrameBufferError(f"屏幕内存大小不合理: {size} bytes")
    try:
        mapping = mmap.mmap(
            fd, size, mmap.MAP_SHARED, mmap.PROT_READ | mmap.PROT_WRITE
        )
    except (OSError, ValueError) as exc:
        raise FrameBufferError(f"无法映射帧缓冲区内存: {exc}") from exc
    if len(mapping) != size:
        actual = len(mapping)
        mapping.close()
        raise FrameBufferError(f"映射大小不匹配: 期望 {size}, 实际 {actual}")
    return mapping


class FrameBuffer:
    """A memory-mapped framebuffer that can be cleared and drawn on."""

    def __init__(self, device: str) -> None:
        try:
            fd = os.open(device, os.O_RDWR)
        except OSError as exc:
            raise FrameBufferError(f"无法打开帧缓冲区设备: {exc}") from exc
        try:
            fixed, var = _query_screen_info(fd)
            mapping = _map_memory(fd, fixed.smem_len)
        except BaseException:
            os.close(fd)
            raise
        self.fixed_info: Optional[FixedScreenInfo] = fixed
        self.var_info: Optional[VarScreenInfo] = var
        self._setup(mapping, var.xres, var.yres, var.bits_per_pixel, fixed.line_length)
        self._fd = fd
        self._mapping = mapping

    @classmethod
    def from_buffer(
        cls, buffer, width: int, height: int, bpp: int, line_length: int
    ) -> "FrameBuffer":
        """Wrap a writable byte buffer laid out like framebuffer memory."""
        fb = cls.__new__(cls)
        fb.fixed_info = None
        fb.var_info = None
        fb._setup(buffer, width, height, bpp, line_length)
        return fb

    def _setup(self, data, width: int, height: int, bpp: int, line_length: int) -> None:
        self._data = data
        self.width = width
        self.height = height
        self.bpp = bpp
        self.line_length = line_length
        self._lock = threading.RLock()
        self._closed = False
        self._fd: Optional[int] = None
        self._mapping: Optional[mmap.mmap] = None

    @property
    def dimensions(self) -> tuple[int, int]:
        """Screen width and height in pixels."""
        return self.width, self.height

    @property
    def closed(self) -> bool:
        return self._closed

    def clear(self) -> None:
        """Fill the whole framebuffer with zero bytes."""
        with self._lock:
            if self._closed or self._data is None:
                return
            self._data[:] = bytes(len(self._data))

    def set_pixel(self, x: int, y: int, color: Sequence[int]) -> None:
        """Write one pixel; coordinates outside the screen are ignored."""
        with self._lock:
            if self._closed or self._data is None:
                return
            if not (0 <= x < self.width and 0 <= y < self.height):
                return
            encoded = encode_pixel(self.bpp, color)
            if not encoded:
                return
            offset = y * self.line_length + x * (self.bpp // 8)
            if offset < 0 or offset + len(encoded) > len(self._data):
                return
            self._data[offset : offset + len(encoded)] = encoded

    def draw_image(self, image: Image.Image, x: int, y: int) -> None:
        """Copy an image with its top-left corner at (x, y), clipped to the screen."""
        with self._lock:
            if self._closed or self._data is None or self.bpp not in _SUPPORTED_BPP:
                return
            start_x, start_y = max(0, x), max(0, y)
            end_x = min(self.width, x + image.width)
            end_y = min(self.height, y + image.height)
            if start_x >= end_x or start_y >= end_y:
                return

            region = image.crop((start_x - x, start_y - y, end_x - x, end_y - y))
            raw = _flatten_to_rgb(region).tobytes()
            stride = (end_x - start_x) * 3
            bytes_per_pixel = self.bpp // 8
            size = len(self._data)

            for row, py in enumerate(range(start_y, end_y)):
                offset = py * self.line_length + start_x * bytes_per_pixel
                room = (size - offset) // bytes_per_pixel * bytes_per_pixel
                if room <= 0:
                    continue
                encoded = _encode_row(self.bpp, raw[row * stride : (row + 1) * stride])
                fit = min(len(encoded), room)
                self._data[offset : offset + fit] = encoded[:fit]

    def close(self) -> None:
        """Unmap the memory and close the device; safe to call twice."""
        with self._lock:
            if self._closed:
                return
            errors: list[str] = []
            if self._mapping is not None:
                try:
                    self._mapping.close()
                except (OSError, BufferError) as exc:
                    errors.append(f"取消内存映射失败: {exc}")
                self._mapping = None
            self._data = None
            if self._fd is not None:
                try:
                    os.close(self._fd)
                except OSError as exc:
                    errors.append(f"关闭设备文件失败: {exc}")
                self._fd = None
            self._closed = True
            if errors:
                raise FrameBufferError("; ".join(errors))

    def __enter__(self) -> "FrameBuffer":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def get_best_framebuffer_device() -> str:
    """Return the first existing framebuffer device, or the default one."""
    for device in FRAMEBUFFER_DEVICES:
        if os.path.exists(device):
            return device
    return DEFAULT_DEVICE


def get_console_resolution(path: str = VIRTUAL_SIZE_PATH) -> tuple[int, int]:
    """Read "width,height" from sysfs, falling back to 1920x1080."""
    try:
        with open(path, encoding="ascii", errors="replace") as fh:
            text = fh.read()
    except OSError:
        return DEFAULT_RESOLUTION
    parts = text.strip().split(",")
    if len(parts) != 2 or not all(_INT_RE.fullmatch(part) for part in parts):
        return DEFAULT_RESOLUTION
    return int(parts[0]), int(parts[1])