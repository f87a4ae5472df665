[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fbconsole"
version = "0.1.0"
description = "Linux framebuffer status console: system information, QR device ID, network checks and a keyboard-driven configuration menu"
requires-python = ">=3.10"
keywords = ["framebuffer", "console", "monitoring", "linux", "kiosk", "system-info", "qrcode"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console :: Framebuffer",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
fbconsole = "fbconsole.app:main"

[tool.hatch.build.targets.wheel]
packages = ["fbconsole"]

[tool.pytest.ini_options]
addopts = "-ra"
