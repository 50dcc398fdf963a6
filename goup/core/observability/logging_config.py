"""
Logging configuration — one-time setup for the goup CLI.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
whatever is configured here.

Console level precedence:
    --debug / --verbose / --quiet  >  GOUP_LOG_LEVEL  >  WARNING

An optional log file (GOUP_LOG_FILE, level GOUP_LOG_FILE_LEVEL) always
gets the full diagnostic format, so install failures can be inspected
after the console output has scrolled away.
"""

from __future__ import annotations

import logging
import os
import sys

_FMT_MINIMAL = "%(message)s"

_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

ENV_LOG_LEVEL = "GOUP_LOG_LEVEL"
ENV_LOG_FILE = "GOUP_LOG_FILE"
ENV_LOG_FILE_LEVEL = "GOUP_LOG_FILE_LEVEL"


def resolve_level(*, debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level name from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Level for the log file; defaults to ``level``.
    """
    console_level = _parse_level(level)

    if console_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif console_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    # Root must pass records down to the most verbose handler
    effective = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        effective = min(effective, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective)
    logging.raiseExceptions = False


def setup_from_flags(*, debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Resolve the level from flags + environment and configure logging.

    Returns:
        The console level name that was applied.
    """
    level = resolve_level(debug=debug, verbose=verbose, quiet=quiet)
    setup_logging(
        level=level,
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )
    return level


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
