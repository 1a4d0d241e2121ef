# parallel_progress/logger.py
"""File logging for monitored runs."""
from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(processName)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_dir: str | Path, filename_prefix: str = "parallel_progress") -> Path:
    """Timestamped log file inside log_dir (the directory is created)."""
    directory = Path(log_dir).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"{filename_prefix}_{datetime.now():%Y%m%d_%H%M%S}.log"


def _file_handler(path: Path, rotate: bool, max_bytes: int, backup_count: int) -> logging.Handler:
    if rotate:
        return RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    return logging.FileHandler(path, mode="w", encoding="utf-8")


def setup_logger(
    log_dir: str | Path,
    *,
    level: int = logging.INFO,
    filename_prefix: str = "parallel_progress",
    console: bool = False,
    rotate: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """
    Send root logging to a new timestamped file in log_dir.

    log_dir is always treated as a directory, whatever its name looks like.
    Records carry the process name, so lines from pool workers that inherit
    this configuration can be told apart. Console output goes to stderr;
    leave ``console`` off while progress bars are on screen.

    Args:
        log_dir: Directory for the log file (created if missing)
        level: Level for the root logger and every handler added
        filename_prefix: Start of the log file name
        console: Also log to stderr
        rotate: Use a size-capped RotatingFileHandler
        max_bytes: Rotation size
        backup_count: Rotated files kept
        force: Remove (and close) existing root handlers first

    Returns:
        Path of the log file
    """
    log_path = log_file_path(log_dir, filename_prefix)

    root = logging.getLogger()
    if force:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [_file_handler(log_path, rotate, max_bytes, backup_count)]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.info("Logging to: %s", log_path)
    return log_path
