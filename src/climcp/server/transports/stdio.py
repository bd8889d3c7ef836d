# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""STDIO transport built on the reference MCP SDK.

The SDK's ``stdio_server`` handles newline-delimited JSON-RPC framing over
``stdin``/``stdout`` and :meth:`CommandServer.run` drives the SDK session,
answering requests one at a time in arrival order.  Responses and server
notifications are written to the output stream by a single forwarding task,
in the order they were produced.

Inbound messages pass a short screen first: unreadable lines are logged and
dropped, and requests for methods outside the server's method set are
answered with ``METHOD_NOT_FOUND`` without reaching the session.  When
``stdin`` closes, the session's input stays open until every request it was
handed has been answered.
"""

from __future__ import annotations

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.stdio import stdio_server
from mcp.shared.message import SessionMessage

from .base import BaseTransport
from ..dispatch import method_not_found
from ..notifications import to_jsonrpc
from ... import types


def get_stdio_server():
    """Return the SDK's stdio context manager.

    Separated into a helper so tests can patch it with in-memory transports.
    """
    return stdio_server


class _Outstanding:
    """Request ids handed to the session that still await a reply."""

    def __init__(self) -> None:
        self._ids: set[types.RequestId] = set()
        self._drained = anyio.Event()
        self._drained.set()

    def add(self, request_id: types.RequestId) -> None:
        if not self._ids:
            self._drained = anyio.Event()
        self._ids.add(request_id)

    def discard(self, request_id: types.RequestId) -> None:
        self._ids.discard(request_id)
        if not self._ids:
            self._drained.set()

    async def wait(self) -> None:
        await self._drained.wait()


class StdioTransport(BaseTransport):
    """Run a :class:`~climcp.server.core.CommandServer` over STDIO."""

    TRANSPORT = ("stdio", "STDIO", "Standard IO")

    async def run(self) -> None:
        stdio_ctx = get_stdio_server()
        async with stdio_ctx() as (read_stream, write_stream):
            await self.serve_streams(read_stream, write_stream)

    async def serve_streams(
        self,
        read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
        write_stream: MemoryObjectSendStream[SessionMessage],
    ) -> None:
        """Answer messages from ``read_stream`` until it is exhausted and every request has a reply."""
        server = self.server

        inbound_send, inbound_recv = anyio.create_memory_object_stream[SessionMessage | Exception](0)
        outbound_send, outbound_recv = anyio.create_memory_object_stream[SessionMessage](0)
        notify_send = outbound_send.clone()
        outstanding = _Outstanding()

        async def _deliver(notification: types.ServerNotification) -> None:
            await notify_send.send(SessionMessage(to_jsonrpc(notification)))

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._screen, read_stream, inbound_send, outbound_send.clone(), outstanding)
            tg.start_soon(self._forward, outbound_recv, write_stream, outstanding)
            detach = server.notification_sink.attach(_deliver)
            try:
                await server.run(inbound_recv, outbound_send, server.create_initialization_options())
            finally:
                detach()
                notify_send.close()

    async def _screen(
        self,
        source: MemoryObjectReceiveStream[SessionMessage | Exception],
        target: MemoryObjectSendStream[SessionMessage | Exception],
        replies: MemoryObjectSendStream[SessionMessage],
        outstanding: _Outstanding,
    ) -> None:
        known = set(self.server.dispatcher.methods)
        async with source, target, replies:
            async for item in source:
                if isinstance(item, Exception):
                    self.server.logger.warning("Discarding unreadable message: %s", item)
                    continue
                root = item.message.root
                if isinstance(root, types.JSONRPCRequest):
                    if root.method not in known:
                        error = method_not_found(root.method).error
                        await replies.send(
                            SessionMessage(
                                types.JSONRPCMessage(types.JSONRPCError(jsonrpc="2.0", id=root.id, error=error))
                            )
                        )
                        continue
                    outstanding.add(root.id)
                await target.send(item)
            # the session closes its output once input ends
            await outstanding.wait()

    async def _forward(
        self,
        source: MemoryObjectReceiveStream[SessionMessage],
        write_stream: MemoryObjectSendStream[SessionMessage],
        outstanding: _Outstanding,
    ) -> None:
        async with source:
            async for item in source:
                root = item.message.root
                if isinstance(root, (types.JSONRPCResponse, types.JSONRPCError)) and root.id is not None:
                    outstanding.discard(root.id)
                await write_stream.send(item)


__all__ = ["StdioTransport", "get_stdio_server"]
