"""Linux framebuffer status console: system info, QR device ID, network checks and menus."""

__version__ = "0.1.0"