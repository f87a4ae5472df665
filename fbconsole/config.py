"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_FONT_PATH = "./fonts/SourceHanSansSC-Regular.ttf"
BACKUP_FONT_PATH = "./fonts/SourceHanSansSC-Regular.otf"
DEFAULT_FONT_SIZE = 20.0
DEFAULT_DPI = 72.0
DEFAULT_DEVICE = "/dev/fb0"


def get_best_font_path() -> str:
    """Return the TTF font path if present, else the OTF one, else the TTF default."""
    for candidate in (DEFAULT_FONT_PATH, BACKUP_FONT_PATH):
        if os.path.exists(candidate):
            return candidate
    return DEFAULT_FONT_PATH


@dataclass
class Config:
    """Runtime settings for fonts and the display device."""

    font_path: str = field(default=DEFAULT_FONT_PATH)
    font_size: float = DEFAULT_FONT_SIZE
    dpi: float = DEFAULT_DPI
    device: str = DEFAULT_DEVICE

    @classmethod
    def default(cls) -> "Config":
        """Build a configuration using the best available font file."""
        return cls(font_path=get_best_font_path())