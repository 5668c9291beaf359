"""
Logging configuration — central setup for the CLI.

``setup_logging`` is called once by ``main.cli``. Modules only ever do
``logger = logging.getLogger(__name__)``.

Console level, highest precedence first:
    --debug / --verbose / --quiet  >  ASQF_LOG_LEVEL  >  WARNING

ASQF_LOG_FILE adds a file handler; ASQF_LOG_FILE_LEVEL sets its level
(default: the console level).
"""

from __future__ import annotations

import logging
import os
import sys

LOG_LEVEL_ENV = "ASQF_LOG_LEVEL"
LOG_FILE_ENV = "ASQF_LOG_FILE"
LOG_FILE_LEVEL_ENV = "ASQF_LOG_FILE_LEVEL"

# Console format by the most verbose level it applies to.
_CONSOLE_FORMATS: list[tuple[int, str, str | None]] = [
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
]

_FILE_FORMAT = ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s", "%Y-%m-%d %H:%M:%S")


def resolve_level(flag_level: str | None = None) -> str:
    """Console level name: CLI flag, then ASQF_LOG_LEVEL, then WARNING."""
    return flag_level or os.environ.get(LOG_LEVEL_ENV) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with a console handler and an optional file.

    Args:
        level: Console level name. Unknown names mean WARNING.
        log_file: Optional log file path, appended to.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)
    handlers = [_console_handler(console_level)]

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for threshold, f, d in _CONSOLE_FORMATS if level <= threshold)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(*_FILE_FORMAT))
    return handler


def _parse_level(name: str | None) -> int:
    """Level name to its numeric value; anything unknown is WARNING."""
    numeric = logging.getLevelName(name.upper()) if name else None
    return numeric if isinstance(numeric, int) else logging.WARNING
