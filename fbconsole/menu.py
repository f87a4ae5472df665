"""Screen layouts for the status console: main page, menus, messages and progress."""

from __future__ import annotations

from typing import Sequence

from PIL import Image, ImageDraw

from .qr import ErrorCorrection, encode as qr_encode

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)
GREEN = (0, 255, 0, 255)

MENU_FONT_SIZE = 14
PROGRESS_FONT_SIZE = 18
LINE_SPACING = 3
MARGIN = 20

QR_PIXEL_SIZE = 4
QR_BORDER = 2 * QR_PIXEL_SIZE

MISSING_DEVICE_ID = "未获取到"
SEPARATOR = "================================"
SEPARATOR_SHORT = "==============================="
QR_HEADER = "此处为二维码展示，二维码的值为设备ID"
QR_UNAVAILABLE = "二维码生成失败：无法获取乾坤云设备ID"
CUSTOMER_SERVICE_LINES = (
    "如有问题请咨询技术客服：微信：your-service-wechat",
    "",
    "按回车键进入配置菜单",
)

STATIC_GUIDE = """=== 系统状态监控 ===

操作指南:
- 按回车键(Enter): 进入配置菜单
- 按 Ctrl+C: 退出程序
- 系统状态每5秒自动更新"""

_BUDDHA = r"""
                    _ooOoo_
                   o8888888o
                   88" . "88
                   (| -_- |)
                   O\  =  /O
                ____/`---'/____
              .'  \\|     |//  `.
             /  \\|||  :  |||//  \
            /  _||||| -:- |||||-  \
            |   | \\\  -  /// |   |
            | \_|  ''---''  |   |
            \  .-\__  `-`  ___/-. /
          ___`. .'  /--.--\  `. . ___
       ."" '<  `.___\_<|>_/___.'  >'"".
      | | :  `- `.;`/;.;`/ - ` : | |
      \  \ `-.   \_ __ \ /__ _/   .;` /  /
  ======`-.____`-.___\_____/___.-`____.-'======
                    `=---='
  ^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^
           佛祖保佑       永不宕机"""


def main_menu_key(info) -> str:
    """Summarise everything shown on the main page, used to detect changes."""
    return "|".join(
        str(value)
        for value in (
            info.uptime,
            info.cpu_model,
            info.cpu_cores,
            info.memory_usage,
            info.disk_size,
            info.disk_count,
            info.current_time,
            info.ip_address,
            info.device_id,
        )
    )


def main_menu_lines(info) -> list[str]:
    """The system information lines of the main page."""
    return [
        f"操作系统运行时间：{info.uptime}",
        f"处理器型号：{info.cpu_model} *{info.cpu_cores} 核",
        f"内存使用状态：{info.memory_usage}",
        f"系统安装磁盘大小：{info.disk_size}（共{info.disk_count}个磁盘）",
        f"当前系统时间：{info.current_time}",
        f"设备IP地址：{info.ip_address}",
        "",
        f"设备ID：{info.device_id}",
    ]


def status_text(info) -> str:
    """Compact multi-line system status."""
    return (
        f"运行时间: {info.uptime}\n"
        f"处理器: {info.cpu_model} ({info.cpu_cores} 核心)\n"
        f"内存使用: {info.memory_usage}\n"
        f"磁盘大小: {info.disk_size} (共 {info.disk_count} 个磁盘)\n"
        f"系统时间: {info.current_time}\n"
        f"IP地址: {info.ip_address}"
    )


def config_menu_text() -> str:
    """The configuration menu listing."""
    return (
        "============================\n"
        "配置菜单\n"
        "============================\n"
        "1. 查看网卡信息\n"
        "2. 重启系统服务\n"
        "3. 检测设备网络\n"
        "4. 重启设备\n"
        "5. 关机\n"
        "============================\n"
        "请输入选项(1-5)，按q返回首页"
    )


def network_info_text(interfaces: Sequence) -> str:
    """Describe physical network interfaces and their addresses."""
    if not interfaces:
        return "未找到任何物理网络接口。\n\n按任意键返回"

    parts = ["物理网卡信息:\n", "========================================\n"]
    for iface in interfaces:
        parts.append(f"接口名称: {iface.name}\n")
        parts.append(f"  状态: {iface.status}\n")
        parts.append(f"  MAC地址: {iface.mac}\n")
        parts.append("  IPv4地址:\n")
        if iface.ipv4_address:
            parts.append(f"    - {iface.ipv4_address}\n")
        else:
            parts.append("    - (未配置)\n")
        parts.append("  IPv6地址:\n")
        if iface.ipv6_addresses:
            parts.extend(f"    - {ip}\n" for ip in iface.ipv6_addresses)
        else:
            parts.append("    - (未配置)\n")
        parts.append("----------------------------------------\n")
    parts.append("\n按任意键返回")
    return "".join(parts)


def buddha_text() -> str:
    """A decorative ASCII-art banner."""
    return _BUDDHA


def qr_image(content: str) -> Image.Image:
    """Render content as a QR code, 4 pixels per module on a white border."""
    code = qr_encode(content, ErrorCorrection.M)
    total = code.size * QR_PIXEL_SIZE + QR_BORDER * 2
    image = Image.new("RGBA", (total, total), WHITE)
    draw = ImageDraw.Draw(image)
    for qy, row in enumerate(code.modules):
        for qx, dark in enumerate(row):
            if dark:
                left = QR_BORDER + qx * QR_PIXEL_SIZE
                top = QR_BORDER + qy * QR_PIXEL_SIZE
                draw.rectangle(
                    (left, top, left + QR_PIXEL_SIZE - 1, top + QR_PIXEL_SIZE - 1),
                    fill=BLACK,
                )
    return image


class MenuRenderer:
    """Draws the console's pages onto a framebuffer with a font renderer."""

    def __init__(self, fb, font_renderer) -> None:
        self.fb = fb
        self.renderer = font_renderer
        self.width, self.height = fb.dimensions
        self._last_content = ""
        self._needs_clear = True
        self._static_rendered = False
        self._last_dynamic_height = 0

    def render_main_menu(self, info) -> None:
        """Draw the main status page unless its content is unchanged."""
        self.renderer.set_size(MENU_FONT_SIZE)
        content = main_menu_key(info)
        if content == self._last_content and self._static_rendered:
            return

        self.fb.clear()
        self._needs_clear = False
        self._render_main_page(info)
        self._last_content = content
        self._static_rendered = True

    def render_config_menu(self) -> None:
        """Draw the configuration menu and force the next main page redraw."""
        self.fb.clear()
        self._needs_clear = True
        self._static_rendered = False
        self.renderer.set_size(MENU_FONT_SIZE)
        self._draw_block(config_menu_text(), "failed to render config menu")

    def invalidate_cache(self) -> None:
        """Forget the last main page so the next one is drawn in full."""
        self._needs_clear = True
        self._static_rendered = False
        self._last_content = ""

    def render_network_info(self, interfaces: Sequence) -> None:
        """Draw the network interface listing."""
        self.fb.clear()
        self.renderer.set_size(MENU_FONT_SIZE)
        self._draw_block(network_info_text(interfaces), "failed to render network info")

    def render_message(self, message: str) -> None:
        """Draw a multi-line message at the top-left corner."""
        self.fb.clear()
        self.renderer.set_size(MENU_FONT_SIZE)
        self._draw_block(message, "failed to render message")

    def show_progress_bar(self, progress: float, message: str) -> None:
        """Draw a centred progress bar filled to progress (0..1) with a caption."""
        self.fb.clear()
        self.renderer.set_size(PROGRESS_FONT_SIZE)

        bar_width, bar_height = 400, 30
        bar_x = (self.width - bar_width) // 2
        bar_y = self.height // 2

        image = Image.new("RGBA", (max(1, self.width), max(1, self.height)), BLACK)
        draw = ImageDraw.Draw(image)
        draw.rectangle(
            (bar_x, bar_y, bar_x + bar_width - 1, bar_y + bar_height - 1), outline=WHITE
        )
        fill_width = int((bar_width - 4) * progress)
        if fill_width > 0:
            draw.rectangle(
                (bar_x + 2, bar_y + 2, bar_x + 2 + fill_width - 1, bar_y + bar_height - 3),
                fill=GREEN,
            )

        if message:
            try:
                text_image = self.renderer.render_text(message, WHITE)
            except Exception:
                text_image = None
            if text_image is not None:
                text_x = (self.width - text_image.width) // 2
                text_y = bar_y - 50
                image.paste(text_image, (text_x, text_y), text_image)

        self.fb.draw_image(image, 0, 0)

    def _draw_block(self, text: str, failure: str) -> None:
        lines = text.split("\n")
        try:
            image = self.renderer.render_multiline_text(lines, WHITE, LINE_SPACING)
        except Exception as exc:
            raise RuntimeError(f"{failure}: {exc}") from exc
        self.fb.draw_image(image, MARGIN, MARGIN)

    def _render_static_content(self) -> None:
        if self._static_rendered:
            return
        image = self.renderer.render_multiline_text(
            STATIC_GUIDE.split("\n"), WHITE, LINE_SPACING
        )
        self.fb.draw_image(image, MARGIN, self.height - image.height - 40)
        self._last_dynamic_height = image.height

    def _render_dynamic_content(self, info) -> None:
        image = self.renderer.render_multiline_text(
            status_text(info).split("\n"), WHITE, LINE_SPACING
        )
        clear_height = max(self._last_dynamic_height, image.height)
        self._clear_dynamic_area(self.width - 40, clear_height + 20)
        self.fb.draw_image(image, MARGIN, 60)
        self._last_dynamic_height = image.height

    def _clear_dynamic_area(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            return
        self.fb.draw_image(Image.new("RGBA", (width, height), BLACK), MARGIN, 60)

    def _char_height(self) -> int:
        return self.renderer.get_text_bounds("字")[1]

    def _render_text_at(self, text: str, x: int, y: int) -> None:
        if not text:
            return
        try:
            image = self.renderer.render_text(text, WHITE)
        except Exception as exc:
            raise RuntimeError(f"failed to render text '{text}': {exc}") from exc
        self.fb.draw_image(image, x, y)

    def _render_main_page(self, info) -> None:
        char_height = self._char_height()
        y = char_height + 10

        self._render_text_at("系统信息", MARGIN, y)
        y += char_height + 5
        self._render_text_at(SEPARATOR, MARGIN, y)
        y += char_height + 5

        for line in main_menu_lines(info):
            self._render_text_at(line, MARGIN, y)
            y += char_height + LINE_SPACING

        self._render_text_at(SEPARATOR, MARGIN, y)
        y += char_height + 10

        if info.device_id and info.device_id != MISSING_DEVICE_ID:
            y = self._render_qr(info.device_id, MARGIN, y) + 20
        else:
            self._render_text_at(QR_UNAVAILABLE, MARGIN, y)
            y += char_height + 20

        self._render_text_at(SEPARATOR_SHORT, MARGIN, y)
        y += char_height + 10

        for line in CUSTOMER_SERVICE_LINES:
            self._render_text_at(line, MARGIN, y)
            y += char_height + LINE_SPACING

    def _render_qr(self, content: str, x: int, y: int) -> int:
        self._render_text_at(QR_HEADER, x, y)
        char_height = self._char_height()
        current_y = y + char_height + 10
        try:
            image = qr_image(content)
        except ValueError as exc:
            self._render_text_at(f"二维码生成失败: {exc}", x, current_y)
            return current_y + char_height
        self.fb.draw_image(image, x, current_y)
        return current_y + image.height