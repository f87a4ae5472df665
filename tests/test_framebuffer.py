import struct

import pytest
from PIL import Image

from fbconsole.framebuffer import (
    FIX_SCREENINFO_FORMAT,
    FRAMEBUFFER_DEVICES,
    VAR_SCREENINFO_FORMAT,
    FixedScreenInfo,
    FrameBuffer,
    FrameBufferError,
    VarScreenInfo,
    encode_pixel,
    get_best_framebuffer_device,
    get_console_resolution,
)


def make_fb(width=4, height=3, bpp=32, line_length=None, size=None):
    line_length = line_length or width * bpp // 8
    buf = bytearray(size if size is not None else line_length * height)
    return FrameBuffer.from_buffer(buf, width, height, bpp, line_length), buf


def test_encode_pixel_rgb565_red():
    assert encode_pixel(16, (255, 0, 0)) == b"\x00\xf8"


def test_encode_pixel_32_is_bgr_with_zero_alpha():
    assert encode_pixel(32, (1, 2, 3)) == bytes([3, 2, 1, 0])


def test_encode_pixel_24_is_bgr():
    assert encode_pixel(24, (1, 2, 3)) == bytes([3, 2, 1])


def test_encode_pixel_unsupported_depth_is_empty():
    assert encode_pixel(8, (1, 2, 3)) == b""


def test_encode_pixel_alpha_premultiplied():
    assert encode_pixel(32, (200, 100, 50, 0)) == bytes(4)
    assert encode_pixel(24, (1, 2, 3, 255)) == encode_pixel(24, (1, 2, 3))


def test_set_pixel_writes_at_offset():
    fb, buf = make_fb()
    fb.set_pixel(1, 2, (10, 20, 30))
    offset = 2 * fb.line_length + 1 * 4
    assert buf[offset : offset + 4] == encode_pixel(32, (10, 20, 30))
    assert sum(buf) == 60


def test_set_pixel_16bpp_matches_encoding():
    fb, buf = make_fb(bpp=16)
    fb.set_pixel(0, 0, (255, 0, 0))
    assert bytes(buf[0:2]) == encode_pixel(16, (255, 0, 0))


@pytest.mark.parametrize("x,y", [(-1, 0), (4, 0), (0, 3), (0, -1)])
def test_set_pixel_out_of_bounds_ignored(x, y):
    fb, buf = make_fb()
    fb.set_pixel(x, y, (255, 255, 255))
    assert buf == bytearray(len(buf))


def test_set_pixel_uses_line_length():
    fb, buf = make_fb(width=2, height=2, bpp=32, line_length=16)
    fb.set_pixel(0, 1, (1, 1, 1))
    assert buf[16:19] == b"\x01\x01\x01"
    assert sum(buf[:16]) == 0


def test_dimensions():
    fb, _ = make_fb(width=7, height=5)
    assert fb.dimensions == (7, 5)


def test_clear_zeroes_buffer():
    fb, buf = make_fb()
    buf[:] = b"\xff" * len(buf)
    fb.clear()
    assert buf == bytearray(len(buf))


def _pattern_image(width, height):
    image = Image.new("RGB", (width, height))
    for yy in range(height):
        for xx in range(width):
            image.putpixel((xx, yy), (xx * 40 + 5, yy * 50 + 7, (xx + yy) * 20 + 3))
    return image


@pytest.mark.parametrize("bpp", [16, 24, 32])
def test_draw_image_matches_set_pixel(bpp):
    image = _pattern_image(4, 4)
    fb, buf = make_fb(width=3, height=3, bpp=bpp)
    ref, ref_buf = make_fb(width=3, height=3, bpp=bpp)
    fb.draw_image(image, -1, -1)
    for py in range(3):
        for px in range(3):
            ref.set_pixel(px, py, image.getpixel((px + 1, py + 1)))
    assert buf == ref_buf


def test_draw_image_transparent_writes_black():
    fb, buf = make_fb(width=2, height=1)
    buf[:] = b"\xff" * len(buf)
    fb.draw_image(Image.new("RGBA", (1, 1), (0, 0, 0, 0)), 0, 0)
    assert buf[0:4] == bytes(4)
    assert buf[4:8] == b"\xff" * 4


def test_draw_image_offscreen_leaves_buffer():
    fb, buf = make_fb()
    fb.draw_image(Image.new("RGB", (2, 2), (255, 255, 255)), 10, 10)
    fb.draw_image(Image.new("RGB", (2, 2), (255, 255, 255)), -5, 0)
    assert buf == bytearray(len(buf))


def test_draw_image_stops_at_buffer_end():
    fb, buf = make_fb(width=4, height=2, bpp=32, line_length=16, size=20)
    fb.draw_image(Image.new("RGB", (4, 2), (255, 255, 255)), 0, 0)
    assert len(buf) == 20
    assert buf[16:20] == encode_pixel(32, (255, 255, 255))
    assert buf[0:4] == encode_pixel(32, (255, 255, 255))


def test_close_stops_drawing_and_is_idempotent():
    fb, buf = make_fb()
    fb.close()
    fb.close()
    fb.set_pixel(0, 0, (255, 255, 255))
    assert fb.closed is True
    assert buf == bytearray(len(buf))


def test_context_manager_closes():
    fb, buf = make_fb()
    with fb as entered:
        entered.set_pixel(0, 0, (9, 9, 9))
    fb.set_pixel(1, 0, (9, 9, 9))
    assert buf[0:3] == b"\x09\x09\x09"
    assert sum(buf[4:]) == 0


def test_open_missing_device_raises(tmp_path):
    with pytest.raises(FrameBufferError):
        FrameBuffer(str(tmp_path / "missing"))


def test_fixed_screen_info_from_bytes():
    data = struct.pack(
        FIX_SCREENINFO_FORMAT,
        b"testfb",
        0x1000,
        4096,
        0,
        0,
        2,
        1,
        1,
        0,
        320,
        0,
        0,
        0,
        0,
        0,
        0,
    )
    info = FixedScreenInfo.from_bytes(data)
    assert info.id == "testfb"
    assert info.smem_len == 4096
    assert info.line_length == 320
    assert info.visual == 2


def test_fixed_screen_info_short_data():
    with pytest.raises(FrameBufferError):
        FixedScreenInfo.from_bytes(b"\x00" * 10)


def test_var_screen_info_from_bytes():
    values = list(range(40))
    info = VarScreenInfo.from_bytes(struct.pack(VAR_SCREENINFO_FORMAT, *values))
    assert info.xres == values[0]
    assert info.yres == values[1]
    assert info.bits_per_pixel == values[6]
    assert info.rotate == values[34]
    assert info.reserved == tuple(values[35:])


def test_var_screen_info_short_data():
    with pytest.raises(FrameBufferError):
        VarScreenInfo.from_bytes(b"\x00" * 100)


def test_console_resolution_reads_file(tmp_path):
    path = tmp_path / "virtual_size"
    path.write_text("1024,768\n")
    assert get_console_resolution(str(path)) == (1024, 768)


@pytest.mark.parametrize("content", ["garbage", "1024", "a,b", "1024, 768", "1,2,3"])
def test_console_resolution_bad_content_defaults(tmp_path, content):
    path = tmp_path / "virtual_size"
    path.write_text(content)
    assert get_console_resolution(str(path)) == (1920, 1080)


def test_console_resolution_missing_file_defaults(tmp_path):
    assert get_console_resolution(str(tmp_path / "nope")) == (1920, 1080)


def test_best_device_is_known():
    assert get_best_framebuffer_device() in FRAMEBUFFER_DEVICES