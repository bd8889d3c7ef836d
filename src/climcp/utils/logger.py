# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Diagnostic logging for climcp.

Everything here writes to ``stderr``.  When the server speaks MCP over stdio,
``stdout`` carries protocol frames and any stray text on it would corrupt the
stream, so filtering reports, limit warnings, and profile notices all travel
through these handlers instead of ``print``.
"""

from __future__ import annotations

from collections.abc import Callable
import json
import logging
import os
import sys
from typing import IO, Any, ClassVar, Final


RESET: Final[str] = "\033[0m"

DEBUG_COLOR: Final[str] = "\033[36m"
INFO_COLOR: Final[str] = "\033[32m"
WARNING_COLOR: Final[str] = "\033[33m"
ERROR_COLOR: Final[str] = "\033[1;31m"
CRITICAL_COLOR: Final[str] = "\033[1;35m"
LOGGER_COLOR: Final[str] = "\033[94m"

DEFAULT_LOGGER_NAME: Final[str] = "climcp"
ENV_LOG_LEVEL: Final[str] = "CLIMCP_LOG_LEVEL"
ENV_LOG_JSON: Final[str] = "CLIMCP_LOG_JSON"
ENV_NO_COLOR: Final[str] = "NO_COLOR"
DEFAULT_FORMAT: Final[str] = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"

# uvicorn installs its own handlers; keep them quiet unless asked.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("uvicorn", "uvicorn.error", "uvicorn.access")

JsonSerializer = Callable[[dict[str, Any]], str]

_BUILTIN_RECORD_KEYS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "process",
        "processName",
        "taskName",
        "message",
        "asctime",
    }
)


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level and logger name."""

    LEVEL_COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": DEBUG_COLOR,
        "INFO": INFO_COLOR,
        "WARNING": WARNING_COLOR,
        "ERROR": ERROR_COLOR,
        "CRITICAL": CRITICAL_COLOR,
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname, name = record.levelname, record.name
        record.levelname = f"{self.LEVEL_COLORS.get(levelname, '')}{levelname}{RESET}"
        record.name = f"{LOGGER_COLOR}{name}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname, record.name = levelname, name


class ClimcpHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler owned by climcp; always bound to a diagnostic stream."""

    def __init__(self, stream: IO[str] | None = None) -> None:
        super().__init__(stream if stream is not None else sys.stderr)


class StructuredJSONFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def __init__(self, serializer: JsonSerializer | None = None, *, datefmt: str | None = None) -> None:
        super().__init__(datefmt=datefmt)
        self._serializer = serializer or _default_json_serializer

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _BUILTIN_RECORD_KEYS and not key.startswith("_")
        }
        if context:
            payload["context"] = context
        return self._serializer(payload)


def _default_json_serializer(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def _read_bool_env(key: str) -> bool:
    value = os.getenv(key)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def resolve_level(level: int | str | None) -> int:
    """Translate ``level`` (or ``CLIMCP_LOG_LEVEL``) into a numeric level."""
    if level is None:
        level = os.getenv(ENV_LOG_LEVEL) or logging.INFO
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def _has_climcp_handler(logger: logging.Logger) -> bool:
    return any(isinstance(handler, ClimcpHandler) for handler in logger.handlers)


def setup_logger(
    *,
    level: int | str | None = None,
    use_json: bool | None = None,
    use_color: bool | None = None,
    json_serializer: JsonSerializer | None = None,
    stream: IO[str] | None = None,
    fmt: str | None = None,
    datefmt: str | None = DEFAULT_DATEFMT,
    force: bool = False,
) -> None:
    """Attach the climcp handler to the root logger.

    Args:
        level: Log level. Falls back to ``CLIMCP_LOG_LEVEL`` then ``INFO``.
        use_json: Emit structured JSON lines. Defaults to ``CLIMCP_LOG_JSON``.
        use_color: Colourise plain output. Disabled by ``NO_COLOR`` or JSON mode.
        json_serializer: Replacement serializer for JSON mode.
        stream: Destination stream; ``sys.stderr`` when omitted. Never pass
            ``sys.stdout`` while serving over stdio.
        fmt: Format string for plain-text output.
        datefmt: Date format for both modes.
        force: Replace a previously attached climcp handler.
    """
    root = logging.getLogger()
    if _has_climcp_handler(root) and not force:
        return

    for handler in list(root.handlers):
        if isinstance(handler, ClimcpHandler):
            root.removeHandler(handler)
            handler.close()

    resolved_level = resolve_level(level)
    root.setLevel(resolved_level)

    resolved_json = use_json if use_json is not None else _read_bool_env(ENV_LOG_JSON)
    if use_color is not None:
        resolved_color = use_color
    elif os.getenv(ENV_NO_COLOR):
        resolved_color = False
    else:
        resolved_color = not resolved_json

    handler = ClimcpHandler(stream)
    handler.setLevel(resolved_level)

    formatter: logging.Formatter
    if resolved_json:
        formatter = StructuredJSONFormatter(json_serializer, datefmt=datefmt)
    elif resolved_color:
        formatter = ColoredFormatter(fmt or DEFAULT_FORMAT, datefmt=datefmt)
    else:
        formatter = logging.Formatter(fmt or DEFAULT_FORMAT, datefmt=datefmt)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger in the ``climcp`` hierarchy, configuring output lazily."""
    if not _has_climcp_handler(logging.getLogger()):
        setup_logger()
    return logging.getLogger(name or DEFAULT_LOGGER_NAME)


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "ClimcpHandler",
    "ColoredFormatter",
    "StructuredJSONFormatter",
    "get_logger",
    "resolve_level",
    "setup_logger",
]
