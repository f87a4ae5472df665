import pytest
from PIL import Image, ImageFont

from fbconsole.fontrender import FontError, FontRenderer, is_otf_font, validate_font_format


@pytest.fixture
def font_file(tmp_path):
    data = ImageFont.load_default().font_bytes
    path = tmp_path / "default.ttf"
    path.write_bytes(data)
    return path


@pytest.fixture
def renderer(font_file):
    return FontRenderer(str(font_file), 14, 72)


def _write(tmp_path, data):
    path = tmp_path / "font.bin"
    path.write_bytes(data)
    return str(path)


def test_empty_path_rejected():
    with pytest.raises(FontError, match="字体文件路径不能为空"):
        FontRenderer("", 14, 72)


@pytest.mark.parametrize("size", [0, -1, 201])
def test_invalid_size_rejected(font_file, size):
    with pytest.raises(FontError, match="字体大小无效"):
        FontRenderer(str(font_file), size, 72)


@pytest.mark.parametrize("dpi", [0, 601])
def test_invalid_dpi_rejected(font_file, dpi):
    with pytest.raises(FontError, match="DPI值无效"):
        FontRenderer(str(font_file), 14, dpi)


def test_missing_file(tmp_path):
    with pytest.raises(FontError, match="无法读取字体文件"):
        FontRenderer(str(tmp_path / "absent.ttf"), 14, 72)


def test_empty_file(tmp_path):
    with pytest.raises(FontError, match="字体文件为空"):
        FontRenderer(_write(tmp_path, b""), 14, 72)


@pytest.mark.parametrize("header", [b"OTTO", b"wOFF", b"wOF2", b"abcd", b"ab"])
def test_unsupported_formats(tmp_path, header):
    with pytest.raises(FontError, match="不支持的字体格式"):
        FontRenderer(_write(tmp_path, header + b"\x00" * 8), 14, 72)


@pytest.mark.parametrize("header", [b"\x00\x01\x00\x00", b"ttcf"])
def test_accepted_header_but_corrupt_body(tmp_path, header):
    with pytest.raises(FontError, match="无法解析字体文件"):
        FontRenderer(_write(tmp_path, header + b"garbage"), 14, 72)


@pytest.mark.parametrize(
    "data, message",
    [
        (b"\x00", "字体文件太小"),
        (b"OTTO....", "OTF"),
        (b"wOFF....", "WOFF"),
        (b"wOF2....", "WOFF2"),
        (b"zzzz....", "未知的字体格式"),
    ],
)
def test_validate_font_format_errors(data, message):
    with pytest.raises(FontError, match=message):
        validate_font_format(data)


def test_is_otf_font():
    assert is_otf_font(b"OTTOxxxx") is True
    assert is_otf_font(b"\x00\x01\x00\x00") is False
    assert is_otf_font(b"OT") is False


def test_render_text_matches_bounds(renderer):
    width, height = renderer.get_text_bounds("Hello")
    image = renderer.render_text("Hello", (255, 0, 0))
    assert image.mode == "RGBA"
    assert image.size == (width, height + 10)


def test_render_text_uses_color(renderer):
    image = renderer.render_text("Hello", (255, 0, 0))
    assert image.getchannel("A").getbbox() is not None
    assert image.getchannel("G").getextrema() == (0, 0)
    assert image.getchannel("B").getextrema() == (0, 0)
    assert image.getchannel("R").getextrema()[1] > 0


def test_measure_string_equals_bounds(renderer):
    assert renderer.measure_string("abc") == renderer.get_text_bounds("abc")


def test_longer_text_is_wider(renderer):
    short_width, _ = renderer.get_text_bounds("ab")
    long_width, _ = renderer.get_text_bounds("abababab")
    assert long_width > short_width


def test_set_size_grows_text(renderer):
    small = renderer.get_text_bounds("Hello")
    renderer.set_size(28)
    large = renderer.get_text_bounds("Hello")
    assert renderer.size == 28
    assert large[0] > small[0]
    assert large[1] > small[1]


def test_multiline_empty(renderer):
    image = renderer.render_multiline_text([], (255, 255, 255), 3)
    assert image.size == (1, 1)


def test_multiline_height_scales_with_lines(renderer):
    single = renderer.render_multiline_text(["x"], (255, 255, 255), 0)
    line_height = single.size[1]
    triple = renderer.render_multiline_text(["a", "b", "c"], (255, 255, 255), 3)
    assert triple.size[1] == 3 * (line_height + 3)


def test_multiline_width_is_widest_line(renderer):
    lines = ["a", "a much longer line", "mid line"]
    image = renderer.render_multiline_text(lines, (255, 255, 255), 3)
    assert image.size[0] == max(renderer.get_text_bounds(line)[0] for line in lines)
    assert image.getchannel("A").getbbox() is not None


def test_draw_text_at_rgba(renderer):
    dst = Image.new("RGBA", (200, 60), (0, 0, 0, 255))
    renderer.draw_text_at(dst, 50, 5, "Hi", (255, 255, 255))
    assert dst.getchannel("R").getextrema()[1] > 0
    assert dst.getpixel((0, 0)) == (0, 0, 0, 255)
    assert dst.getchannel("A").getextrema() == (255, 255)


def test_draw_text_at_negative_offset(renderer):
    dst = Image.new("RGB", (100, 40), (0, 0, 0))
    renderer.draw_text_at(dst, -2, -2, "Hello", (0, 255, 0))
    assert dst.getchannel("G").getextrema()[1] > 0
    assert dst.getchannel("R").getextrema() == (0, 0)