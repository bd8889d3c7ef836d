# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Logging capability service.

Implements ``logging/setLevel`` and forwards records from the ``climcp``
logger hierarchy to connected clients as ``notifications/message``.  Nothing
is forwarded until a client has chosen a level.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from typing import Any

from ..notifications import NotificationSink
from ... import types
from ...exceptions import invalid_params
from ...utils.logger import DEFAULT_LOGGER_NAME


_LOGGING_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}

# Set while a record is being forwarded so delivery failures that log do not loop.
_forwarding: contextvars.ContextVar[bool] = contextvars.ContextVar("climcp_log_forwarding", default=False)


class LoggingService:
    def __init__(self, sink: NotificationSink, *, logger_name: str = DEFAULT_LOGGER_NAME) -> None:
        self._sink = sink
        self._threshold: int | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._logger = logging.getLogger(logger_name)
        self._handler = _NotificationHandler(self)
        self._logger.addHandler(self._handler)

    @property
    def threshold(self) -> int | None:
        return self._threshold

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def set_level(self, level: str) -> None:
        self._threshold = self._resolve(level)
        self._loop = asyncio.get_running_loop()

    async def emit(self, level: types.LoggingLevel, data: Any, logger_name: str | None = None) -> None:
        numeric = self._resolve(level)
        await self._broadcast(level, numeric, data, logger_name)

    async def handle_log_record(self, record: logging.LogRecord) -> None:
        data: dict[str, Any] = {"message": record.getMessage()}
        if record.exc_info:
            data["exception"] = logging.Formatter().formatException(record.exc_info)
        await self._broadcast(_level_name(record.levelno), record.levelno, data, record.name)

    def submit(self, record: logging.LogRecord) -> None:
        """Schedule forwarding of ``record`` from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._schedule(record)
        else:
            loop.call_soon_threadsafe(self._schedule, record)

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        for task in list(self._pending):
            task.cancel()

    def _schedule(self, record: logging.LogRecord) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_log_record(record))
        self._pending.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled() or task.exception() is None:
            return
        token = _forwarding.set(True)
        try:
            self._logger.warning("Could not forward log record", exc_info=task.exception())
        finally:
            _forwarding.reset(token)

    def _resolve(self, level: str) -> int:
        try:
            return _LOGGING_LEVEL_MAP[level]
        except KeyError as exc:
            raise invalid_params(f"Unsupported logging level '{level}'") from exc

    async def _broadcast(self, level: types.LoggingLevel, numeric: int, data: Any, logger_name: str | None) -> None:
        if self._threshold is None or numeric < self._threshold:
            return
        params = types.LoggingMessageNotificationParams(level=level, logger=logger_name, data=data)
        token = _forwarding.set(True)
        try:
            await self._sink.send(
                types.ServerNotification(types.LoggingMessageNotification(method="notifications/message", params=params))
            )
        finally:
            _forwarding.reset(token)


def _level_name(numeric: int) -> types.LoggingLevel:
    if numeric >= logging.CRITICAL:
        return "critical"
    if numeric >= logging.ERROR:
        return "error"
    if numeric >= logging.WARNING:
        return "warning"
    if numeric >= logging.INFO:
        return "info"
    return "debug"


class _NotificationHandler(logging.Handler):
    def __init__(self, service: LoggingService) -> None:
        super().__init__(level=logging.NOTSET)
        self.service = service

    def emit(self, record: logging.LogRecord) -> None:
        threshold = self.service.threshold
        if threshold is None or record.levelno < threshold or _forwarding.get():
            return
        self.service.submit(record)


__all__ = ["LoggingService"]
