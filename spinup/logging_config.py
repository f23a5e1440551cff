from __future__ import annotations

import logging
import os
import sys

_DEFAULT_LOG_LEVEL = "INFO"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_RESET = "\x1b[0m"
_LEVEL_COLORS = {
    "DEBUG": "\x1b[36m",
    "INFO": "\x1b[32m",
    "WARNING": "\x1b[33m",
    "ERROR": "\x1b[31m",
    "CRITICAL": "\x1b[1;31m",
}
# Chatty third-party loggers kept at WARNING unless we run at DEBUG.
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


class _ColorFormatter(logging.Formatter):
    def __init__(self, *, use_color: bool) -> None:
        super().__init__(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = _LEVEL_COLORS.get(levelname) if self._use_color else None
        if color:
            record.levelname = f"{color}{levelname}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _should_use_color() -> bool:
    return not os.getenv("NO_COLOR") and sys.stderr.isatty()


def resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv("SPINUP_LOG_LEVEL") or _DEFAULT_LOG_LEVEL).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(*, level: str | int | None = None, force: bool = False) -> None:
    """Install a single stderr handler on the root logger.

    Repeated calls only adjust the level unless ``force`` is set, so the CLI,
    the app factory and uvicorn can all call this safely.
    """
    root = logging.getLogger()
    resolved_level = resolve_level(level)
    root.setLevel(resolved_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))

    if root.handlers and not force:
        for handler in root.handlers:
            handler.setLevel(resolved_level)
        return

    handler = logging.StreamHandler()
    handler.setLevel(resolved_level)
    handler.setFormatter(_ColorFormatter(use_color=_should_use_color()))
    root.handlers.clear()
    root.addHandler(handler)
