# src/taskdeck/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Minimum level shown on the console, by logger-name prefix (longest prefix wins).
# The REPL shares stderr with the prompt, so per-request chatter stays in the file.
CONSOLE_LEVELS: dict[str, int] = {
    "taskdeck": logging.DEBUG,
    "taskdeck.session.client": logging.WARNING,
    "taskdeck.tasks.task_cache": logging.INFO,
    "py.warnings": logging.ERROR,
}
OTHER_LOGGERS_LEVEL = logging.ERROR

LOG_FILE_NAME = "taskdeck.log"
LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3


class _ConsoleNoiseFilter(logging.Filter):
    """Drop records below the console threshold of their logger (see CONSOLE_LEVELS)."""

    def __init__(self, levels: Mapping[str, int], default: int) -> None:
        super().__init__()
        # Longest prefixes first so "taskdeck.session.client" beats "taskdeck".
        self._levels = sorted(levels.items(), key=lambda kv: len(kv[0]), reverse=True)
        self._default = default

    def threshold(self, name: str) -> int:
        for prefix, level in self._levels:
            if name == prefix or name.startswith(prefix + "."):
                return level
        return self._default

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.threshold(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskdeck",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console: filtered, for the interactive session.
    File: everything at file_level, rotated, under log_dir.

    Call once from the entrypoint before anything logs. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter(CONSOLE_LEVELS, OTHER_LOGGERS_LEVEL))
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # Request lines from httpx would duplicate SessionClient's own DEBUG lines.
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
