# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""HTTP sessions, their resumable event logs, and live SSE connections.

Every session keeps a bounded log of :class:`SessionEvent` objects with a
per-session monotonic id.  A reconnecting client sends the last id it saw in
``Last-Event-ID``; :meth:`HttpSessionManager.stream` replays every buffered
event with a greater id, in order, before switching to live delivery.

Two sweeps keep memory bounded while the HTTP transport is up:

* the retention sweep drops events older than ``event_retention`` (the log
  length itself is capped at ``max_events`` on append);
* the idle sweep removes sessions whose ``last_activity`` is older than
  ``session_timeout`` and closes their SSE connections.

Sweeps always read session state fresh, so a session swept while one of its
requests is in flight simply disappears from the map.
"""

from __future__ import annotations

from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import time
from typing import Any
import uuid

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
import orjson

from ...utils import get_logger


DEFAULT_MAX_EVENTS = 1000
DEFAULT_EVENT_RETENTION = 60 * 60.0
DEFAULT_SESSION_TIMEOUT = 30 * 60.0
DEFAULT_SWEEP_INTERVAL = 5 * 60.0
DEFAULT_KEEPALIVE_INTERVAL = 15.0
DEFAULT_CONNECTION_BUFFER = 100

Clock = Callable[[], float]


def format_sse(event: str, data: Any, event_id: int | None = None) -> str:
    """Render one Server-Sent Event frame."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {orjson.dumps(data).decode()}")
    return "\n".join(lines) + "\n\n"


KEEPALIVE_FRAME = ": keep-alive\n\n"


@dataclass(frozen=True, slots=True)
class SessionEvent:
    id: int
    type: str
    data: Any
    timestamp: float

    def encode(self) -> str:
        return format_sse(self.type, self.data, self.id)


@dataclass(slots=True)
class HttpSession:
    id: str
    created_at: float
    last_activity: float
    max_events: int = DEFAULT_MAX_EVENTS
    event_id: int = 0
    event_log: deque[SessionEvent] = field(init=False)

    def __post_init__(self) -> None:
        self.event_log = deque(maxlen=self.max_events)

    def touch(self, now: float) -> None:
        self.last_activity = now

    def append(self, event_type: str, data: Any, now: float) -> SessionEvent:
        self.event_id += 1
        event = SessionEvent(self.event_id, event_type, data, now)
        self.event_log.append(event)
        return event

    def events_after(self, last_event_id: int | None) -> list[SessionEvent]:
        if last_event_id is None:
            return []
        return [event for event in self.event_log if event.id > last_event_id]

    def trim(self, now: float, retention: float) -> int:
        """Drop events older than ``retention`` seconds; returns how many."""
        dropped = 0
        while self.event_log and now - self.event_log[0].timestamp > retention:
            self.event_log.popleft()
            dropped += 1
        return dropped


@dataclass(slots=True, eq=False)
class SseConnection:
    stream_id: str
    session_id: str
    send_stream: MemoryObjectSendStream[SessionEvent]
    since: int = 0
    subscriptions: set[str] = field(default_factory=set)

    def push(self, event: SessionEvent) -> bool:
        """Queue ``event`` for the client; ``False`` when the stream is gone or full."""
        try:
            self.send_stream.send_nowait(event)
        except anyio.WouldBlock:
            return False
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            return False
        return True

    def close(self) -> None:
        self.send_stream.close()


def parse_last_event_id(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


class HttpSessionManager:
    def __init__(
        self,
        *,
        max_events: int = DEFAULT_MAX_EVENTS,
        event_retention: float = DEFAULT_EVENT_RETENTION,
        session_timeout: float = DEFAULT_SESSION_TIMEOUT,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        clock: Clock = time.time,
        logger=None,
    ) -> None:
        self.max_events = max_events
        self.event_retention = event_retention
        self.session_timeout = session_timeout
        self.sweep_interval = sweep_interval
        self.keepalive_interval = keepalive_interval
        self._clock = clock
        self._logger = logger or get_logger("climcp.http")
        self._sessions: dict[str, HttpSession] = {}
        self._connections: dict[str, SseConnection] = {}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def create(self) -> HttpSession:
        now = self._clock()
        session = HttpSession(id=uuid.uuid4().hex, created_at=now, last_activity=now, max_events=self.max_events)
        self._sessions[session.id] = session
        self._logger.debug("Created session %s", session.id)
        return session

    def get(self, session_id: str | None) -> HttpSession | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def touch(self, session: HttpSession) -> None:
        session.touch(self._clock())

    def terminate(self, session_id: str) -> bool:
        """Remove a session and close its streams; ``False`` if it was unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        for connection in self.connections_for(session_id):
            self.close_connection(connection.stream_id)
        self._logger.debug("Terminated session %s", session_id)
        return True

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def record(self, session: HttpSession, event_type: str, data: Any) -> SessionEvent:
        """Append to ``session``'s log and push to its live connections."""
        event = session.append(event_type, data, self._clock())
        for connection in self.connections_for(session.id):
            if not connection.push(event):
                self._logger.debug("Dropped event %d for stream %s", event.id, connection.stream_id)
        return event

    def broadcast(self, event_type: str, data: Any) -> int:
        """Record ``data`` in every session; returns the number of sessions reached."""
        sessions = list(self._sessions.values())
        for session in sessions:
            self.record(session, event_type, data)
        return len(sessions)

    # ------------------------------------------------------------------
    # SSE connections
    # ------------------------------------------------------------------

    def connections_for(self, session_id: str) -> list[SseConnection]:
        return [conn for conn in self._connections.values() if conn.session_id == session_id]

    def open_connection(
        self,
        session: HttpSession,
        last_event_id: int | None = None,
        *,
        buffer: int = DEFAULT_CONNECTION_BUFFER,
    ) -> tuple[SseConnection, MemoryObjectReceiveStream[SessionEvent]]:
        """Register a live stream for ``session``.

        The connection remembers where it starts: after ``last_event_id`` when
        the client is resuming, otherwise after the newest logged event.
        """
        send_stream, receive_stream = anyio.create_memory_object_stream[SessionEvent](buffer)
        since = last_event_id if last_event_id is not None else session.event_id
        connection = SseConnection(
            stream_id=uuid.uuid4().hex, session_id=session.id, send_stream=send_stream, since=since
        )
        self._connections[connection.stream_id] = connection
        return connection, receive_stream

    def close_connection(self, stream_id: str) -> None:
        connection = self._connections.pop(stream_id, None)
        if connection is not None:
            connection.close()

    async def stream(
        self,
        session: HttpSession,
        connection: SseConnection,
        receive_stream: MemoryObjectReceiveStream[SessionEvent],
    ) -> AsyncIterator[str]:
        """Yield SSE frames: greeting, replayed backlog, then live events.

        Ends when the session is terminated or swept.  Events already
        replayed from the log are not sent a second time when they also
        arrive on the live stream.
        """
        last_sent = connection.since
        try:
            yield format_sse("connected", {"streamId": connection.stream_id, "sessionId": session.id})
            for event in session.events_after(connection.since):
                yield event.encode()
                last_sent = event.id
            while True:
                with anyio.move_on_after(self.keepalive_interval) as scope:
                    event = await receive_stream.receive()
                if scope.cancelled_caught:
                    yield KEEPALIVE_FRAME
                    continue
                if event.id <= last_sent:
                    continue
                last_sent = event.id
                yield event.encode()
        except anyio.EndOfStream:
            return
        finally:
            receive_stream.close()
            self.close_connection(connection.stream_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_events(self) -> int:
        now = self._clock()
        return sum(session.trim(now, self.event_retention) for session in list(self._sessions.values()))

    def sweep_idle(self) -> list[str]:
        now = self._clock()
        expired = [
            session_id
            for session_id, session in list(self._sessions.items())
            if now - session.last_activity > self.session_timeout
        ]
        for session_id in expired:
            self.terminate(session_id)
        if expired:
            self._logger.info("Expired %d idle session(s)", len(expired))
        return expired

    def sweep(self) -> None:
        self.sweep_events()
        self.sweep_idle()

    async def _sweep_forever(self) -> None:
        while True:
            await anyio.sleep(self.sweep_interval)
            self.sweep()

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Run the periodic sweeps for the lifetime of the context."""
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._sweep_forever)
            try:
                yield
            finally:
                tg.cancel_scope.cancel()
                for stream_id in list(self._connections):
                    self.close_connection(stream_id)


__all__ = [
    "DEFAULT_EVENT_RETENTION",
    "DEFAULT_MAX_EVENTS",
    "DEFAULT_SESSION_TIMEOUT",
    "DEFAULT_SWEEP_INTERVAL",
    "KEEPALIVE_FRAME",
    "HttpSession",
    "HttpSessionManager",
    "SessionEvent",
    "SseConnection",
    "format_sse",
    "parse_last_event_id",
]
