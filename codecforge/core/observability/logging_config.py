"""
Logging configuration — one call from main.py sets up the whole process.

Modules log through ``logging.getLogger(__name__)``; nothing else here is
imported by the build code.

Console level precedence:
    --debug flag  >  CF_LOG_LEVEL env var  >  WARNING

A second, usually more detailed, sink can be added with CF_LOG_FILE
(level from CF_LOG_FILE_LEVEL). Scheduler workers are named threads, so
the detailed formats carry ``threadName`` to untangle parallel builds.
Compiler and configure output is not routed through logging at all; each
target writes its own log under ``<layout>/logs``.
"""

from __future__ import annotations

import logging
import os
import sys

# ── Formats ─────────────────────────────────────────────────────

_DETAILED = "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d — %(message)s"

# console level → (format, datefmt); WARNING and above print bare messages
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: (_DETAILED, "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_PLAIN = ("%(message)s", None)

_FILE_FORMAT = (_DETAILED, "%Y-%m-%d %H:%M:%S")


def level_from_env(debug: bool = False) -> str:
    """Resolve the console level: --debug wins, then CF_LOG_LEVEL."""
    if debug:
        return "DEBUG"
    return os.environ.get("CF_LOG_LEVEL", "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and the optional file handler on the root logger.

    Args:
        level: Console level name; unknown names fall back to WARNING.
        log_file: Path of the detailed log. Defaults to CF_LOG_FILE.
        log_file_level: Level of the detailed log. Defaults to
            CF_LOG_FILE_LEVEL, then to ``level``.
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get("CF_LOG_FILE") or None
    log_file_level = log_file_level or os.environ.get("CF_LOG_FILE_LEVEL") or None

    handlers = [_console_handler(console_level)]
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # root must pass whatever the most verbose sink wants
    root.setLevel(min(h.level for h in handlers))

    # warnings.warn output from libraries lands in the same sinks
    logging.captureWarnings(True)


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next(
        (f for threshold, f in sorted(_CONSOLE_FORMATS.items()) if level <= threshold),
        _PLAIN,
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    fmt, datefmt = _FILE_FORMAT
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _parse_level(level: str | None) -> int:
    """Level name → numeric level, WARNING for anything unrecognized."""
    numeric = getattr(logging, level.upper(), None) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
