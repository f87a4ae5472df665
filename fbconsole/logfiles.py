"""Daily log files in a directory, with retention cleanup and midnight rotation."""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from datetime import date, datetime, timedelta
from typing import Optional

LOG_PREFIX = "console-"
LOG_SUFFIX = ".log"
RETENTION_DAYS = 3
SEPARATOR = "=" * 42

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_FORMAT = "%(asctime)s %(filename)s:%(lineno)d: %(message)s"
_DATE_FORMAT = "%Y/%m/%d %H:%M:%S"

logger = logging.getLogger(__name__)


class _ConsoleLogHandler(logging.FileHandler):
    """File handler installed and replaced by this module."""


def log_file_name(day: Optional[date] = None) -> str:
    """Return the log file name for a day (today by default)."""
    day = day or date.today()
    return f"{LOG_PREFIX}{day:%Y-%m-%d}{LOG_SUFFIX}"


def cleanup_old_logs(directory: str = ".", now: Optional[datetime] = None) -> list[str]:
    """Delete dated log files older than the retention period; return removed names."""
    now = now or datetime.now()
    cutoff = now - timedelta(days=RETENTION_DAYS)
    removed: list[str] = []
    try:
        entries = list(os.scandir(directory))
    except OSError:
        return removed

    for entry in entries:
        try:
            if entry.is_dir():
                continue
        except OSError:
            continue
        name = entry.name
        if not (name.startswith(LOG_PREFIX) and name.endswith(LOG_SUFFIX)):
            continue
        date_part = name[len(LOG_PREFIX) :]
        if date_part.endswith(LOG_SUFFIX):
            date_part = date_part[: -len(LOG_SUFFIX)]
        if not _DATE_RE.fullmatch(date_part):
            continue
        try:
            file_date = datetime.strptime(date_part, "%Y-%m-%d")
        except ValueError:
            continue
        if file_date < cutoff:
            try:
                os.remove(entry.path)
            except OSError:
                continue
            print(f"已删除旧日志文件: {name}")
            removed.append(name)
    return removed


def _install_handler(path: str) -> logging.Handler:
    handler = _ConsoleLogHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FORMAT, _DATE_FORMAT))
    root = logging.getLogger()
    for old in [h for h in root.handlers if isinstance(h, _ConsoleLogHandler)]:
        root.removeHandler(old)
        old.close()
    root.addHandler(handler)
    root.setLevel(logging.INFO)
    return handler


def rotate_log(directory: str = ".") -> Optional[str]:
    """Clean old logs and switch logging to today's file; None if it cannot be opened."""
    cleanup_old_logs(directory)
    path = os.path.join(directory, log_file_name())
    try:
        _install_handler(path)
    except OSError:
        return None
    logger.info(SEPARATOR)
    logger.info("日志轮转完成，新日志文件: %s", path)
    return path


def init_logging(directory: str = ".") -> str:
    """Send logging to today's file in directory and start midnight rotation."""
    cleanup_old_logs(directory)
    path = os.path.join(directory, log_file_name())
    _install_handler(path)
    logger.info(SEPARATOR)
    logger.info("日志系统初始化完成，日志文件: %s", path)
    start_rotation_worker(directory)
    return path


def _seconds_until_midnight(now: datetime) -> float:
    midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    return (midnight - now).total_seconds()


def start_rotation_worker(directory: str = ".") -> threading.Thread:
    """Start a daemon thread that rotates the log file every midnight."""

    def worker() -> None:
        while True:
            time.sleep(_seconds_until_midnight(datetime.now()))
            rotate_log(directory)

    thread = threading.Thread(target=worker, name="log-rotation", daemon=True)
    thread.start()
    return thread