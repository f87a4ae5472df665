"""TrueType text rendering into RGBA images."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Iterable, Sequence, Union

from PIL import Image, ImageDraw, ImageFont

Color = Union[tuple[int, int, int], tuple[int, int, int, int]]

_MAX_FONT_FILE = 50 * 1024 * 1024
_TRANSPARENT = (0, 0, 0, 0)


class FontError(Exception):
    """Raised when a font cannot be loaded or text cannot be drawn."""


def validate_font_format(data: bytes) -> None:
    """Accept TrueType and TrueType collection data; raise FontError otherwise."""
    if len(data) < 4:
        raise FontError("字体文件太小，无法确定格式")
    if data.startswith(b"\x00\x01\x00\x00"):
        return
    if data.startswith(b"ttcf"):
        return
    if data.startswith(b"OTTO"):
        raise FontError("检测到OTF格式，freetype库对此格式支持有限")
    if data.startswith(b"wOFF"):
        raise FontError("不支持WOFF格式，请使用TTF格式")
    if data.startswith(b"wOF2"):
        raise FontError("不支持WOFF2格式，请使用TTF格式")
    raise FontError("未知的字体格式，仅支持TTF格式")


def is_otf_font(data: bytes) -> bool:
    """Tell whether the data carries the OpenType CFF signature."""
    return data.startswith(b"OTTO")


def supported_font_info() -> str:
    """Describe which font formats are supported."""
    return """支持的字体格式:
- TTF (TrueType Font) - 推荐
- TTC (TrueType Collection)

不支持的格式:
- OTF (OpenType Font) - 部分支持，可能出现错误
- WOFF (Web Open Font Format)
- WOFF2 (Web Open Font Format 2.0)

建议：
1. 将OTF字体转换为TTF格式
2. 使用免费转换工具如FontForge
3. 或下载TTF版本的相同字体"""


def _rgba(color: Color) -> tuple[int, int, int, int]:
    if len(color) == 3:
        return (color[0], color[1], color[2], 255)
    return tuple(color)  # type: ignore[return-value]


class FontRenderer:
    """Renders text with one TrueType font at a given point size and DPI."""

    def __init__(self, font_path: str, size: float, dpi: float) -> None:
        if not font_path:
            raise FontError("字体文件路径不能为空")
        if size <= 0 or size > 200:
            raise FontError(f"字体大小无效: {size:f}")
        if dpi <= 0 or dpi > 600:
            raise FontError(f"DPI值无效: {dpi:f}")

        try:
            data = Path(font_path).read_bytes()
        except OSError as exc:
            raise FontError(f"无法读取字体文件 {font_path}: {exc}") from exc

        if not data:
            raise FontError(f"字体文件为空: {font_path}")
        if len(data) > _MAX_FONT_FILE:
            raise FontError(f"字体文件过大: {len(data)} bytes")

        try:
            validate_font_format(data)
        except FontError as exc:
            raise FontError(f"不支持的字体格式 {font_path}: {exc}") from exc

        self._data = data
        self.dpi = dpi
        self.size = size
        try:
            self._font = self._load()
        except (OSError, ValueError) as exc:
            if is_otf_font(data):
                raise FontError(
                    f"OTF字体格式支持有限，建议使用TTF格式的字体文件。当前文件: {font_path}"
                ) from exc
            raise FontError(f"无法解析字体文件 {font_path}: {exc}") from exc

    def _pixel_size(self) -> float:
        return self.size * self.dpi / 72.0

    def _load(self) -> ImageFont.FreeTypeFont:
        pixels = max(1, round(self._pixel_size()))
        return ImageFont.truetype(io.BytesIO(self._data), pixels)

    def set_size(self, size: float) -> None:
        """Change the point size used for subsequent rendering."""
        self.size = size
        self._font = self._load()

    def get_text_bounds(self, text: str) -> tuple[int, int]:
        """Return the width (advance) and ink height of text, plus a 2-pixel margin."""
        _, top, _, bottom = self._font.getbbox(text)
        advance = self._font.getlength(text)
        return int(advance) + 2, (bottom - top) + 2

    def measure_string(self, text: str) -> tuple[int, int]:
        """Return the same size as get_text_bounds."""
        return self.get_text_bounds(text)

    def render_text(self, text: str, color: Color) -> Image.Image:
        """Render one line onto a transparent image."""
        width, height = self.get_text_bounds(text)
        if width == 0 or height == 0:
            width, height = 100, int(self.size)

        image = Image.new("RGBA", (width, height + 10), _TRANSPARENT)
        baseline = int(self._pixel_size())
        ImageDraw.Draw(image).text(
            (0, baseline), text, font=self._font, fill=_rgba(color), anchor="ls"
        )
        return image

    def render_multiline_text(
        self, lines: Sequence[str], color: Color, line_spacing: int = 0
    ) -> Image.Image:
        """Render lines top to bottom using the font's line height plus spacing."""
        lines = list(lines)
        if not lines:
            return Image.new("RGBA", (1, 1), _TRANSPARENT)

        ascent, descent = self._font.getmetrics()
        line_height = ascent + descent

        max_width = max(self.get_text_bounds(line)[0] for line in lines)
        total_height = (line_height + line_spacing) * len(lines)
        if max_width == 0:
            max_width = 100
        if total_height <= 0:
            total_height = 20 * len(lines)

        image = Image.new("RGBA", (max_width, total_height), _TRANSPARENT)
        draw = ImageDraw.Draw(image)
        fill = _rgba(color)
        y = ascent
        for line in lines:
            draw.text((0, y), line, font=self._font, fill=fill, anchor="ls")
            y += line_height + line_spacing
        return image

    def draw_text_at(
        self, dst: Image.Image, x: int, y: int, text: str, color: Color
    ) -> None:
        """Blend rendered text over dst with its top-left corner at (x, y)."""
        text_image = self.render_text(text, color)
        if dst.mode == "RGBA" and x >= 0 and y >= 0:
            dst.alpha_composite(text_image, (x, y))
        else:
            dst.paste(text_image.convert(dst.mode), (x, y), text_image)


def render_lines(renderer: FontRenderer, lines: Iterable[str], color: Color) -> Image.Image:
    """Render lines with no extra spacing."""
    return renderer.render_multiline_text(list(lines), color, 0)