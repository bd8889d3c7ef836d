# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""STDIO transport over in-memory streams."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import anyio
from mcp.shared.message import SessionMessage
import orjson
import pytest

from climcp import types
from climcp.server.dispatch import dump_message, parse_message
from climcp.server.transports import StdioTransport
from tests.helpers import Catalog, Greet, initialize_params, make_server, ready_server, rpc


def _message(payload: dict[str, Any]) -> SessionMessage:
    return SessionMessage(parse_message(orjson.dumps(payload)))


async def _exchange(transport: StdioTransport, inbound: list[SessionMessage | Exception]) -> list[dict[str, Any]]:
    read_send, read_recv = anyio.create_memory_object_stream[SessionMessage | Exception](len(inbound) + 1)
    write_send, write_recv = anyio.create_memory_object_stream[SessionMessage](32)
    for item in inbound:
        read_send.send_nowait(item)
    read_send.close()

    await transport.serve_streams(read_recv, write_send)
    write_send.close()

    outbound = []
    async with write_recv:
        async for item in write_recv:
            outbound.append(dump_message(item.message))
    return outbound


def _handshake(request_id: int = 0) -> list[SessionMessage]:
    return [
        _message(rpc("initialize", initialize_params(), request_id=request_id)),
        _message({"jsonrpc": "2.0", "method": "notifications/initialized"}),
    ]


@pytest.mark.anyio
async def test_messages_are_answered_in_order() -> None:
    server = await ready_server([Greet])
    outbound = await _exchange(
        StdioTransport(server),
        [
            *_handshake(request_id=1),
            ValueError("garbled line"),
            _message(rpc("tools/call", {"name": "greet", "arguments": {"name": "ada"}}, request_id=2)),
            _message(rpc("tools/call", {"name": "nonexistent"}, request_id=3)),
            _message(rpc("tools/list", request_id=4)),
        ],
    )

    assert [item["id"] for item in outbound] == [1, 2, 3, 4]
    assert outbound[0]["result"]["protocolVersion"] == "2025-06-18"
    assert outbound[0]["result"]["capabilities"]["resources"] == {"subscribe": True, "listChanged": True}
    assert outbound[1]["result"]["content"][0]["text"] == "hello ada\n"
    assert outbound[2]["error"]["code"] == -32001
    assert [tool["name"] for tool in outbound[3]["result"]["tools"]] == ["greet"]
    assert server.notification_sink.target_count == 0


@pytest.mark.anyio
async def test_unknown_method_is_method_not_found() -> None:
    server = await ready_server([Greet])
    outbound = await _exchange(
        StdioTransport(server),
        [*_handshake(), _message(rpc("tools/explode", request_id=5))],
    )
    assert outbound[1] == {
        "jsonrpc": "2.0",
        "id": 5,
        "error": {"code": types.METHOD_NOT_FOUND, "message": "Method not found: tools/explode"},
    }


@pytest.mark.anyio
async def test_unexpected_failure_is_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    server = await ready_server([Greet])

    async def _explode(cursor=None):
        raise RuntimeError("catalog corrupted")

    monkeypatch.setattr(server.tools, "list_tools", _explode)
    outbound = await _exchange(StdioTransport(server), [*_handshake(), _message(rpc("tools/list", request_id=9))])
    assert outbound[1]["id"] == 9
    assert outbound[1]["error"] == {"code": types.INTERNAL_ERROR, "message": "Internal error"}


@pytest.mark.anyio
async def test_notifications_share_the_output_stream() -> None:
    server = await ready_server([Catalog])
    outbound = await _exchange(
        StdioTransport(server),
        [
            *_handshake(),
            _message(rpc("resources/subscribe", {"uri": "status://live"}, request_id=1)),
            _message(rpc("resources/read", {"uri": "status://live"}, request_id=2)),
        ],
    )

    assert outbound[1] == {"jsonrpc": "2.0", "id": 1, "result": {}}
    assert outbound[2] == {
        "jsonrpc": "2.0",
        "method": "notifications/resources/updated",
        "params": {"uri": "status://live"},
    }
    assert outbound[3]["id"] == 2
    assert orjson.loads(outbound[3]["result"]["contents"][0]["text"]) == {"state": "green"}


@pytest.mark.anyio
async def test_serve_over_patched_stdio(monkeypatch: pytest.MonkeyPatch) -> None:
    read_send, read_recv = anyio.create_memory_object_stream[SessionMessage | Exception](4)
    write_send, write_recv = anyio.create_memory_object_stream[SessionMessage](4)
    read_send.send_nowait(_message(rpc("ping", request_id="p1")))
    read_send.close()

    @asynccontextmanager
    async def fake_stdio_server():
        yield read_recv, write_send

    monkeypatch.setattr("climcp.server.transports.stdio.get_stdio_server", lambda: fake_stdio_server)

    server = make_server([Greet])
    await server.serve(transport="stdio")

    reply = write_recv.receive_nowait()
    assert dump_message(reply.message) == {"jsonrpc": "2.0", "id": "p1", "result": {}}
    assert server.is_ready
