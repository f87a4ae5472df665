"""QR code generation: mode selection, Reed-Solomon coding, layout and masking."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import Enum
from typing import Callable

MIN_VERSION = 1
MAX_VERSION = 40


class ErrorCorrection(Enum):
    """Error correction level, from lowest (L) to highest (H) redundancy."""

    L = 0
    M = 1
    Q = 2
    H = 3

    @property
    def format_bits(self) -> int:
        """The two-bit value stored in the format information."""
        return (1, 0, 3, 2)[self.value]


_ECC_CODEWORDS_PER_BLOCK = (
    (-1, 7, 10, 15, 20, 26, 18, 20, 24, 30, 18, 20, 24, 26, 30, 22, 24, 28, 30, 28, 28,
     28, 28, 30, 30, 26, 28, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),
    (-1, 10, 16, 26, 18, 24, 16, 18, 22, 22, 26, 30, 22, 22, 24, 24, 28, 28, 26, 26, 26,
     26, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28, 28),
    (-1, 13, 22, 18, 26, 18, 24, 18, 22, 20, 24, 28, 26, 24, 20, 30, 24, 28, 28, 26, 30,
     28, 30, 30, 30, 30, 28, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),
    (-1, 17, 28, 22, 16, 22, 28, 26, 26, 24, 28, 24, 28, 22, 24, 24, 30, 28, 28, 26, 28,
     30, 24, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30, 30),
)

_NUM_ERROR_CORRECTION_BLOCKS = (
    (-1, 1, 1, 1, 1, 1, 2, 2, 2, 2, 4, 4, 4, 4, 4, 6, 6, 6, 6, 7, 8,
     8, 9, 9, 10, 12, 12, 12, 13, 14, 15, 16, 17, 18, 19, 19, 20, 21, 22, 24, 25),
    (-1, 1, 1, 1, 2, 2, 4, 4, 4, 5, 5, 5, 8, 9, 9, 10, 10, 11, 13, 14, 16,
     17, 17, 18, 20, 21, 23, 25, 26, 28, 29, 31, 33, 35, 37, 38, 40, 43, 45, 47, 49),
    (-1, 1, 1, 2, 2, 4, 4, 6, 6, 8, 8, 8, 10, 12, 16, 12, 17, 16, 18, 21, 20,
     23, 23, 25, 27, 29, 34, 34, 35, 38, 40, 43, 45, 48, 51, 53, 56, 59, 62, 65, 68),
    (-1, 1, 1, 2, 4, 4, 4, 5, 6, 8, 8, 11, 11, 16, 16, 18, 16, 19, 21, 25, 25,
     25, 34, 30, 32, 35, 37, 40, 42, 45, 48, 51, 54, 57, 60, 63, 66, 70, 74, 77, 81),
)

_ALPHANUMERIC = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./:"
_DIGITS = frozenset("0123456789")

_MASKS: tuple[Callable[[int, int], bool], ...] = (
    lambda x, y: (x + y) % 2 == 0,
    lambda x, y: y % 2 == 0,
    lambda x, y: x % 3 == 0,
    lambda x, y: (x + y) % 3 == 0,
    lambda x, y: (x // 3 + y // 2) % 2 == 0,
    lambda x, y: x * y % 2 + x * y % 3 == 0,
    lambda x, y: (x * y % 2 + x * y % 3) % 2 == 0,
    lambda x, y: ((x + y) % 2 + x * y % 3) % 2 == 0,
)

_FINDER_LIKE = ("10111010000", "00001011101")


@dataclass(frozen=True)
class _Mode:
    indicator: int
    count_bits: tuple[int, int, int]

    def char_count_bits(self, version: int) -> int:
        return self.count_bits[0 if version <= 9 else 1 if version <= 26 else 2]


_NUMERIC = _Mode(0x1, (10, 12, 14))
_ALNUM = _Mode(0x2, (9, 11, 13))
_BYTE = _Mode(0x4, (8, 16, 16))


@dataclass(frozen=True)
class QRCode:
    """A finished QR symbol; modules[y][x] is True for a dark module."""

    version: int
    level: ErrorCorrection
    mask: int
    modules: tuple[tuple[bool, ...], ...]

    @property
    def size(self) -> int:
        """Number of modules along one side."""
        return len(self.modules)

    def black(self, x: int, y: int) -> bool:
        """Tell whether the module at column x, row y is dark; False outside."""
        return 0 <= x < self.size and 0 <= y < self.size and self.modules[y][x]


def _append_bits(bits: list[int], value: int, length: int) -> None:
    bits.extend((value >> i) & 1 for i in reversed(range(length)))


def _payload(text: str) -> tuple[_Mode, int, list[int]]:
    bits: list[int] = []
    if text and all(ch in _DIGITS for ch in text):
        for start in range(0, len(text), 3):
            chunk = text[start : start + 3]
            _append_bits(bits, int(chunk), len(chunk) * 3 + 1)
        return _NUMERIC, len(text), bits
    if text and all(ch in _ALPHANUMERIC for ch in text):
        for start in range(0, len(text), 2):
            chunk = text[start : start + 2]
            if len(chunk) == 2:
                value = _ALPHANUMERIC.index(chunk[0]) * 45 + _ALPHANUMERIC.index(chunk[1])
                _append_bits(bits, value, 11)
            else:
                _append_bits(bits, _ALPHANUMERIC.index(chunk), 6)
        return _ALNUM, len(text), bits
    data = text.encode("utf-8")
    for byte in data:
        _append_bits(bits, byte, 8)
    return _BYTE, len(data), bits


def _raw_data_modules(version: int) -> int:
    result = (16 * version + 128) * version + 64
    if version >= 2:
        count = version // 7 + 2
        result -= (25 * count - 10) * count - 55
        if version >= 7:
            result -= 36
    return result


def _data_codewords(version: int, level: ErrorCorrection) -> int:
    idx = level.value
    return (
        _raw_data_modules(version) // 8
        - _ECC_CODEWORDS_PER_BLOCK[idx][version] * _NUM_ERROR_CORRECTION_BLOCKS[idx][version]
    )


def _alignment_positions(version: int) -> list[int]:
    if version == 1:
        return []
    count = version // 7 + 2
    size = version * 4 + 17
    step = (version * 8 + count * 3 + 5) // (count * 4 - 4) * 2
    positions = [size - 7 - i * step for i in range(count - 1)] + [6]
    return list(reversed(positions))


def _gf_multiply(x: int, y: int) -> int:
    z = 0
    for i in reversed(range(8)):
        z = (z << 1) ^ ((z >> 7) * 0x11D)
        z ^= ((y >> i) & 1) * x
    return z


def _rs_divisor(degree: int) -> list[int]:
    result = [0] * (degree - 1) + [1]
    root = 1
    for _ in range(degree):
        for j in range(degree):
            result[j] = _gf_multiply(result[j], root)
            if j + 1 < degree:
                result[j] ^= result[j + 1]
        root = _gf_multiply(root, 0x02)
    return result


def _rs_remainder(data: list[int], divisor: list[int]) -> list[int]:
    result = [0] * len(divisor)
    for byte in data:
        factor = byte ^ result.pop(0)
        result.append(0)
        for i, coef in enumerate(divisor):
            result[i] ^= _gf_multiply(coef, factor)
    return result


def _add_ecc_and_interleave(data: list[int], version: int, level: ErrorCorrection) -> list[int]:
    num_blocks = _NUM_ERROR_CORRECTION_BLOCKS[level.value][version]
    ecc_len = _ECC_CODEWORDS_PER_BLOCK[level.value][version]
    raw_codewords = _raw_data_modules(version) // 8
    num_short = num_blocks - raw_codewords % num_blocks
    short_len = raw_codewords // num_blocks

    divisor = _rs_divisor(ecc_len)
    blocks: list[list[int]] = []
    offset = 0
    for index in range(num_blocks):
        length = short_len - ecc_len + (0 if index < num_short else 1)
        block = data[offset : offset + length]
        offset += length
        ecc = _rs_remainder(block, divisor)
        if index < num_short:
            block.append(0)
        blocks.append(block + ecc)

    result: list[int] = []
    for i in range(len(blocks[0])):
        for j, block in enumerate(blocks):
            if i != short_len - ecc_len or j >= num_short:
                result.append(block[i])
    return result


def _penalty(grid: list[list[bool]]) -> int:
    size = len(grid)
    score = 0
    for line in itertools.chain(grid, zip(*grid)):
        for _, group in itertools.groupby(line):
            run = sum(1 for _ in group)
            if run >= 5:
                score += 3 + run - 5
        text = "".join("1" if module else "0" for module in line)
        for pattern in _FINDER_LIKE:
            start = text.find(pattern)
            while start != -1:
                score += 40
                start = text.find(pattern, start + 1)

    for upper, lower in zip(grid, grid[1:]):
        for a, b, c, d in zip(upper, upper[1:], lower, lower[1:]):
            if a == b == c == d:
                score += 3

    dark = sum(map(sum, grid))
    total = size * size
    k = (abs(dark * 20 - total * 10) + total - 1) // total - 1
    return score + k * 10


class _Matrix:
    def __init__(self, version: int) -> None:
        self.version = version
        self.size = version * 4 + 17
        self.modules = [[False] * self.size for _ in range(self.size)]
        self.function = [[False] * self.size for _ in range(self.size)]

    def _set(self, x: int, y: int, dark: bool) -> None:
        self.modules[y][x] = dark
        self.function[y][x] = True

    def draw_function_patterns(self) -> None:
        size = self.size
        for i in range(size):
            self._set(6, i, i % 2 == 0)
            self._set(i, 6, i % 2 == 0)
        for cx, cy in ((3, 3), (size - 4, 3), (3, size - 4)):
            self._finder(cx, cy)
        positions = _alignment_positions(self.version)
        last = len(positions) - 1
        for i, cx in enumerate(positions):
            for j, cy in enumerate(positions):
                if (i, j) in ((0, 0), (0, last), (last, 0)):
                    continue
                self._alignment(cx, cy)
        self.draw_format_bits(ErrorCorrection.M, 0)
        self._version_bits()

    def _finder(self, x: int, y: int) -> None:
        for dy in range(-4, 5):
            for dx in range(-4, 5):
                xx, yy = x + dx, y + dy
                if 0 <= xx < self.size and 0 <= yy < self.size:
                    self._set(xx, yy, max(abs(dx), abs(dy)) not in (2, 4))

    def _alignment(self, x: int, y: int) -> None:
        for dy in range(-2, 3):
            for dx in range(-2, 3):
                self._set(x + dx, y + dy, max(abs(dx), abs(dy)) != 1)

    def draw_format_bits(self, level: ErrorCorrection, mask: int) -> None:
        data = level.format_bits << 3 | mask
        rem = data
        for _ in range(10):
            rem = (rem << 1) ^ ((rem >> 9) * 0x537)
        bits = (data << 10 | rem) ^ 0x5412

        def bit(i: int) -> bool:
            return (bits >> i) & 1 != 0

        size = self.size
        for i in range(6):
            self._set(8, i, bit(i))
        self._set(8, 7, bit(6))
        self._set(8, 8, bit(7))
        self._set(7, 8, bit(8))
        for i in range(9, 15):
            self._set(14 - i, 8, bit(i))
        for i in range(8):
            self._set(size - 1 - i, 8, bit(i))
        for i in range(8, 15):
            self._set(8, size - 15 + i, bit(i))
        self._set(8, size - 8, True)

    def _version_bits(self) -> None:
        if self.version < 7:
            return
        rem = self.version
        for _ in range(12):
            rem = (rem << 1) ^ ((rem >> 11) * 0x1F25)
        bits = self.version << 12 | rem
        for i in range(18):
            dark = (bits >> i) & 1 != 0
            a = self.size - 11 + i % 3
            b = i // 3
            self._set(a, b, dark)
            self._set(b, a, dark)

    def place_codewords(self, codewords: list[int]) -> None:
        bits = ((byte >> (7 - i)) & 1 == 1 for byte in codewords for i in range(8))
        size = self.size
        right = size - 1
        while right >= 1:
            if right == 6:
                right = 5
            upward = ((right + 1) & 2) == 0
            for vert in range(size):
                y = size - 1 - vert if upward else vert
                for x in (right, right - 1):
                    if not self.function[y][x]:
                        self.modules[y][x] = next(bits, False)
            right -= 2

    def apply_mask(self, mask: int) -> None:
        test = _MASKS[mask]
        for y, (row, fixed) in enumerate(zip(self.modules, self.function)):
            for x, is_function in enumerate(fixed):
                if not is_function and test(x, y):
                    row[x] = not row[x]


def _choose_version(
    mode: _Mode, count: int, payload_len: int, level: ErrorCorrection
) -> int:
    for version in range(MIN_VERSION, MAX_VERSION + 1):
        cc_bits = mode.char_count_bits(version)
        if count >= 1 << cc_bits:
            continue
        if 4 + cc_bits + payload_len <= _data_codewords(version, level) * 8:
            return version
    raise ValueError("数据过长，无法生成二维码")


def encode(text: str, level: ErrorCorrection = ErrorCorrection.M) -> QRCode:
    """Encode text in the smallest QR version that holds it at the given level."""
    mode, count, payload = _payload(text)
    version = _choose_version(mode, count, len(payload), level)
    capacity = _data_codewords(version, level) * 8

    bits: list[int] = []
    _append_bits(bits, mode.indicator, 4)
    _append_bits(bits, count, mode.char_count_bits(version))
    bits.extend(payload)
    bits.extend([0] * min(4, capacity - len(bits)))
    bits.extend([0] * (-len(bits) % 8))

    data = [
        int("".join(map(str, bits[i : i + 8])), 2) for i in range(0, len(bits), 8)
    ]
    for pad in itertools.cycle((0xEC, 0x11)):
        if len(data) * 8 >= capacity:
            break
        data.append(pad)

    codewords = _add_ecc_and_interleave(data, version, level)
    matrix = _Matrix(version)
    matrix.draw_function_patterns()
    matrix.place_codewords(codewords)

    best_mask = 0
    best_score: int | None = None
    for mask in range(len(_MASKS)):
        matrix.apply_mask(mask)
        matrix.draw_format_bits(level, mask)
        score = _penalty(matrix.modules)
        if best_score is None or score < best_score:
            best_mask, best_score = mask, score
        matrix.apply_mask(mask)

    matrix.apply_mask(best_mask)
    matrix.draw_format_bits(level, best_mask)
    return QRCode(
        version=version,
        level=level,
        mask=best_mask,
        modules=tuple(tuple(row) for row in matrix.modules),
    )