# src/connector_sync/logging_setup.py

"""
Logging for the console app.

stderr shares the terminal with the REPL, so it only gets what a user should
see right away; the rotating file under the data dir keeps everything.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER = "connector_sync"
LOG_FILE_NAME = "connector_sync.log"

# Logger prefix -> lowest level that still reaches the console.
# Storage logs every write at DEBUG.
CONSOLE_THRESHOLDS: dict[str, int] = {
    "connector_sync.storage": logging.WARNING,
    "py.warnings": logging.ERROR,
}
THIRD_PARTY_THRESHOLD = logging.ERROR

_CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s [%(threadName)s]: %(message)s"


def resolve_level(level: int | str | None, default: int = logging.INFO) -> int:
    """Accept 10, "debug", "WARNING" ...; anything unknown falls back to `default`."""
    if isinstance(level, int):
        return level
    if not level:
        return default
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


class _ConsoleFilter(logging.Filter):
    def __init__(self, thresholds: dict[str, int]) -> None:
        super().__init__()
        # Longest prefix first so "a.b" beats "a".
        self._thresholds = sorted(thresholds.items(), key=lambda kv: len(kv[0]), reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        for prefix, level in self._thresholds:
            if name == prefix or name.startswith(prefix + "."):
                return record.levelno >= level
        if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
            return True
        return record.levelno >= THIRD_PARTY_THRESHOLD


def setup_logging(
    *,
    log_dir: str | Path = ".local/connector_sync",
    level: int | str | None = logging.WARNING,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backups: int = 3,
) -> Path:
    """Install the console + rotating file handlers on the root logger. Returns the log file path."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(resolve_level(level, logging.WARNING))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    console.addFilter(_ConsoleFilter(CONSOLE_THRESHOLDS))
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    return log_file
