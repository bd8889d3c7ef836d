# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""HTTP + Server-Sent Events transport.

Routes:

* ``POST /`` - one JSON-RPC message per request.
* ``GET /`` (``Mcp-Session-Id`` header) and ``GET /events/{session_id}`` -
  the session's SSE stream, resumable with ``Last-Event-ID``.
* ``DELETE /`` (header) and ``DELETE /sessions/{session_id}`` - terminate.
* ``GET /health`` - liveness with session and connection counts.

``POST /`` validates in a fixed order and the first failure wins: protocol
version (400), origin (403), ``Accept`` (406), JSON-RPC envelope (400).
Notifications and client responses are acknowledged with a bare 202 and
never dispatched.  Every other method except ``initialize`` needs a known
session: a missing header is a 400, an unknown id a 404.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from mcp.shared.exceptions import McpError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from ._asgi import ASGITransportBase
from .sessions import HttpSession, HttpSessionManager, format_sse, parse_last_event_id
from ..dispatch import dump_message, error_payload, parse_message
from ..notifications import to_jsonrpc
from ... import types
from ...versioning import ASSUMED_HTTP_PROTOCOL_VERSION, is_supported


if TYPE_CHECKING:
    from ..core import CommandServer


SESSION_HEADER = "mcp-session-id"
PROTOCOL_VERSION_HEADER = "mcp-protocol-version"
LAST_EVENT_ID_HEADER = "last-event-id"

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}

_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
_JSON_TYPES = frozenset({"*/*", "application/*", "application/json"})
_SSE_TYPES = frozenset({"text/*", "text/event-stream"})


def is_allowed_origin(origin: str | None) -> bool:
    """Accept loopback hosts and dotted hostnames outside ``.local``."""
    if origin is None:
        return True
    try:
        hostname = urlsplit(origin).hostname
    except ValueError:
        return False
    if not hostname:
        return False
    if hostname in _LOOPBACK_HOSTS:
        return True
    return "." in hostname and not hostname.endswith(".local")


def _media_types(accept: str) -> set[str]:
    return {part.split(";", 1)[0].strip().lower() for part in accept.split(",") if part.strip()}


def accepts_response(accept: str | None) -> bool:
    if not accept:
        return True
    media = _media_types(accept)
    return bool(media & (_JSON_TYPES | _SSE_TYPES))


def prefers_event_stream(accept: str | None) -> bool:
    """True when the client can only take the reply as an SSE event."""
    if not accept:
        return False
    media = _media_types(accept)
    return bool(media & _SSE_TYPES) and not media & _JSON_TYPES


def _error_response(
    status_code: int, code: int, message: str, request_id: types.RequestId | None = None
) -> JSONResponse:
    return JSONResponse(error_payload(types.ErrorData(code=code, message=message), request_id), status_code=status_code)


class StreamableHTTPTransport(ASGITransportBase):
    """Serve a :class:`~climcp.server.core.CommandServer` over HTTP and SSE."""

    TRANSPORT = ("streamable-http", "Streamable HTTP")

    def __init__(self, server: CommandServer, *, sessions: HttpSessionManager | None = None) -> None:
        super().__init__(server)
        self.sessions = sessions or HttpSessionManager(logger=server.logger)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _build_routes(self) -> Iterable[Route]:
        return [
            Route("/health", self.handle_health, methods=["GET"]),
            Route("/events/{session_id}", self.handle_events, methods=["GET"]),
            Route("/sessions/{session_id}", self.handle_terminate, methods=["DELETE"]),
            Route("/", self.handle_root, methods=["GET", "POST", "DELETE"]),
        ]

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator[None]:
        detach = self.server.notification_sink.attach(self._deliver_notification)
        try:
            async with self.sessions.run():
                yield
        finally:
            detach()

    async def _deliver_notification(self, notification: types.ServerNotification) -> None:
        self.sessions.broadcast("message", dump_message(to_jsonrpc(notification)))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_headers(self, request: Request) -> JSONResponse | None:
        version = request.headers.get(PROTOCOL_VERSION_HEADER, ASSUMED_HTTP_PROTOCOL_VERSION)
        if not is_supported(version):
            return _error_response(400, types.INVALID_REQUEST, f"Unsupported protocol version: {version}")
        if not is_allowed_origin(request.headers.get("origin")):
            return _error_response(403, types.INVALID_REQUEST, "Origin not allowed")
        return None

    def _session_for(self, session_id: str | None) -> HttpSession | JSONResponse:
        if not session_id:
            return _error_response(400, types.INVALID_REQUEST, "Missing Mcp-Session-Id header")
        session = self.sessions.get(session_id)
        if session is None:
            return _error_response(404, types.INVALID_REQUEST, "Session not found")
        return session

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def handle_root(self, request: Request) -> Response:
        if request.method == "POST":
            return await self.handle_post(request)
        if request.method == "DELETE":
            return await self._terminate(request, request.headers.get(SESSION_HEADER))
        return await self._open_stream(request, request.headers.get(SESSION_HEADER))

    async def handle_post(self, request: Request) -> Response:
        rejected = self._check_headers(request)
        if rejected is not None:
            return rejected
        accept = request.headers.get("accept")
        if not accepts_response(accept):
            return _error_response(
                406, types.INVALID_REQUEST, "Accept must allow application/json or text/event-stream"
            )

        try:
            message = parse_message(await request.body())
        except McpError as exc:
            return JSONResponse(error_payload(exc.error), status_code=400)

        root = message.root
        if not isinstance(root, types.JSONRPCRequest):
            return Response(status_code=202)

        session_id = request.headers.get(SESSION_HEADER)
        if root.method == "initialize":
            session = self.sessions.get(session_id) or self.sessions.create()
        else:
            resolved = self._session_for(session_id)
            if isinstance(resolved, Response):
                return resolved
            session = resolved

        try:
            self.sessions.touch(session)
            response = await self.server.dispatcher.handle_request(root)
            payload = dump_message(response)
            event = self.sessions.record(session, "rpc_call", {"request": dump_message(root), "response": payload})
        except Exception:
            self.server.logger.exception("HTTP request %s failed", root.method)
            return _error_response(500, types.INTERNAL_ERROR, "Internal error", root.id)

        headers = {"Mcp-Session-Id": session.id}
        if prefers_event_stream(accept):
            return Response(
                format_sse("message", payload, event.id),
                media_type="text/event-stream",
                headers={**headers, **SSE_HEADERS},
            )
        return JSONResponse(payload, headers=headers)

    async def handle_events(self, request: Request) -> Response:
        return await self._open_stream(request, request.path_params["session_id"])

    async def handle_terminate(self, request: Request) -> Response:
        return await self._terminate(request, request.path_params["session_id"])

    async def handle_health(self, request: Request) -> Response:
        return JSONResponse(
            {
                "status": "ok",
                "sessions": self.sessions.session_count,
                "connections": self.sessions.connection_count,
            }
        )

    async def _open_stream(self, request: Request, session_id: str | None) -> Response:
        rejected = self._check_headers(request)
        if rejected is not None:
            return rejected
        resolved = self._session_for(session_id)
        if isinstance(resolved, Response):
            return resolved
        session = resolved

        self.sessions.touch(session)
        last_event_id = parse_last_event_id(request.headers.get(LAST_EVENT_ID_HEADER))
        connection, receive_stream = self.sessions.open_connection(session, last_event_id)
        self.server.logger.debug("Opened SSE stream %s for session %s", connection.stream_id, session.id)
        return StreamingResponse(
            self.sessions.stream(session, connection, receive_stream),
            media_type="text/event-stream",
            headers={"Mcp-Session-Id": session.id, **SSE_HEADERS},
        )

    async def _terminate(self, request: Request, session_id: str | None) -> Response:
        rejected = self._check_headers(request)
        if rejected is not None:
            return rejected
        if not session_id:
            return _error_response(400, types.INVALID_REQUEST, "Missing Mcp-Session-Id header")
        if not self.sessions.terminate(session_id):
            return _error_response(404, types.INVALID_REQUEST, "Session not found")
        return JSONResponse({"status": "terminated", "sessionId": session_id})


__all__ = [
    "LAST_EVENT_ID_HEADER",
    "PROTOCOL_VERSION_HEADER",
    "SESSION_HEADER",
    "StreamableHTTPTransport",
    "accepts_response",
    "is_allowed_origin",
    "prefers_event_stream",
]
