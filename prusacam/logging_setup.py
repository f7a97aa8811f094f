"""Logging configuration helpers for the camera service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

DEFAULT_LOGGER_NAME = "prusacam"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(name: Optional[str]) -> Tuple[int, Optional[str]]:
    """Map a level name to a logging level, returning an optional warning."""
    key = (name or "").strip().lower()
    if key in _LEVELS:
        return _LEVELS[key], None
    return logging.INFO, f"Unknown log level '{name}', using INFO instead"


def _open_log_file(log_file: Union[str, Path]) -> Tuple[Optional[logging.Handler], List[str]]:
    """Open ``log_file``, or a file of the same name in the cwd.

    Returns the handler (``None`` when neither location is writable) and the
    warnings to emit once logging is up.
    """
    requested = Path(log_file).expanduser().absolute()
    warnings: List[str] = []
    for candidate in dict.fromkeys([requested, Path.cwd() / requested.name]):
        try:
            candidate.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(candidate, encoding="utf-8")
        except OSError as exc:
            warnings.append(f"Cannot write log file {candidate}: {exc}")
            continue
        if candidate != requested:
            warnings.append(f"Logging to {candidate} instead")
        return handler, warnings
    return None, warnings


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    log_file: Union[str, Path, None] = None,
    include_stream: bool = True,
    logger_name: Optional[str] = None,
) -> logging.Logger:
    """Configure application logging and return a ready-to-use logger.

    Parameters
    ----------
    level:
        Numeric level or one of ``debug``, ``info``, ``warn`` and ``error``.
        Unknown names fall back to INFO with a warning.
    log_file:
        Optional path to a log file. ``None`` (default) logs to the stream only.
    include_stream:
        When ``True`` (default) attach a `logging.StreamHandler`.
    logger_name:
        Name of the logger to return. Defaults to ``"prusacam"``.
    """

    pending_warnings: List[str] = []
    if isinstance(level, str):
        level, level_warning = parse_level(level)
        if level_warning:
            pending_warnings.append(level_warning)

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")

    handlers: List[logging.Handler] = []
    if log_file:
        file_handler, file_warnings = _open_log_file(log_file)
        pending_warnings.extend(file_warnings)
        if file_handler is not None:
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

    if include_stream:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        handlers.append(stream_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # APScheduler logs every job execution at INFO.
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))

    logger = logging.getLogger(logger_name or DEFAULT_LOGGER_NAME)
    logger.setLevel(level)

    for warning in pending_warnings:
        logger.warning(warning)

    return logger


__all__ = ["configure_logging", "parse_level"]
