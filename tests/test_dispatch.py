# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""JSON-RPC dispatch, lifecycle and error mapping."""

from __future__ import annotations

import anyio
from mcp.server.lowlevel import Server
from mcp.shared.exceptions import McpError
import pytest

from climcp import types
from climcp.server import ServerState
from climcp.server.dispatch import REQUEST_TYPES, dump_message, error_payload, parse_message
from climcp.versioning import LATEST_PROTOCOL_VERSION
from tests.helpers import Greet, NotificationRecorder, initialize_params, make_server, ready_server, rpc


def _request(method: str, params: dict | None = None, request_id: int = 1) -> types.JSONRPCRequest:
    return types.JSONRPCRequest.model_validate(rpc(method, params, request_id))


@pytest.mark.anyio
async def test_requests_before_startup_are_rejected() -> None:
    server = make_server([Greet])
    assert server.state is ServerState.UNINITIALIZED
    with pytest.raises(McpError) as excinfo:
        await server.dispatcher.call("ping")
    assert excinfo.value.error.code == types.INTERNAL_ERROR

    await server.prepare()
    assert server.is_ready
    assert await server.dispatcher.call("ping") == {}


@pytest.mark.anyio
async def test_prepare_is_idempotent() -> None:
    server = make_server([Greet])
    first = await server.prepare()
    second = await server.prepare()
    assert first is second
    assert server.tools.tool_names == ["greet"]


@pytest.mark.anyio
async def test_initialize_negotiates_version_and_reports_capabilities() -> None:
    server = await ready_server([Greet], name="acme", instructions="Use the greet tool")
    result = await server.handle("initialize", initialize_params("2025-03-26"))
    assert result["protocolVersion"] == "2025-03-26"
    assert result["serverInfo"] == {"name": "acme", "version": "1.0.0"}
    assert result["instructions"] == "Use the greet tool"
    capabilities = result["capabilities"]
    assert capabilities["tools"] == {"listChanged": True}
    assert capabilities["resources"] == {"subscribe": True, "listChanged": True}
    assert capabilities["prompts"] == {"listChanged": True}
    assert capabilities["logging"] == {}

    newer = await server.handle("initialize", initialize_params("2099-01-01"))
    assert newer["protocolVersion"] == LATEST_PROTOCOL_VERSION


@pytest.mark.anyio
async def test_unknown_tool_becomes_error_response_without_result() -> None:
    server = await ready_server([Greet])
    response = await server.dispatcher.handle_request(_request("tools/call", {"name": "nonexistent"}, 7))
    payload = dump_message(response)
    assert payload["id"] == 7
    assert payload["error"]["code"] == types.TOOL_NOT_FOUND
    assert "result" not in payload


@pytest.mark.anyio
async def test_unknown_method() -> None:
    server = await ready_server()
    response = dump_message(await server.dispatcher.handle_request(_request("tools/explode")))
    assert response["error"]["code"] == types.METHOD_NOT_FOUND
    assert response["error"]["message"] == "Method not found: tools/explode"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("method", "params"),
    [
        ("tools/call", {}),
        ("resources/read", {}),
        ("resources/subscribe", {"uri": 3}),
        ("prompts/get", {"name": "summary", "arguments": ["x"]}),
        ("logging/setLevel", {"level": "loud"}),
        ("initialize", {"protocolVersion": "2025-06-18"}),
        ("tools/list", {"cursor": 5}),
    ],
)
async def test_malformed_params_are_invalid_params(method: str, params: dict) -> None:
    server = await ready_server([Greet])
    response = dump_message(await server.dispatcher.handle_request(_request(method, params)))
    assert response["error"]["code"] == types.INVALID_PARAMS


@pytest.mark.anyio
async def test_unexpected_failure_is_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    server = await ready_server([Greet])

    async def _explode(cursor=None):
        raise RuntimeError("catalog corrupted")

    monkeypatch.setattr(server.tools, "list_tools", _explode)
    response = dump_message(await server.dispatcher.handle_request(_request("tools/list")))
    assert response["error"] == {"code": types.INTERNAL_ERROR, "message": "Internal error"}


@pytest.mark.anyio
async def test_handle_message_ignores_notifications_and_responses() -> None:
    server = await ready_server()
    notification = parse_message(b'{"jsonrpc": "2.0", "method": "notifications/initialized"}')
    response = parse_message(b'{"jsonrpc": "2.0", "id": 1, "result": {}}')
    assert await server.dispatcher.handle_message(notification) is None
    assert await server.dispatcher.handle_message(response) is None

    request = parse_message(b'{"jsonrpc": "2.0", "id": "abc", "method": "ping"}')
    answer = dump_message(await server.dispatcher.handle_message(request))
    assert answer == {"jsonrpc": "2.0", "id": "abc", "result": {}}


def test_parse_message_errors() -> None:
    with pytest.raises(McpError) as excinfo:
        parse_message(b"{not json")
    assert excinfo.value.error.code == types.PARSE_ERROR

    with pytest.raises(McpError) as excinfo:
        parse_message(b'{"hello": "world"}')
    assert excinfo.value.error.code == types.INVALID_REQUEST


def test_error_payload_allows_null_id() -> None:
    payload = error_payload(types.ErrorData(code=types.INVALID_REQUEST, message="bad"))
    assert payload == {"jsonrpc": "2.0", "id": None, "error": {"code": types.INVALID_REQUEST, "message": "bad"}}


@pytest.mark.anyio
async def test_set_level_forwards_log_records() -> None:
    server = await ready_server()
    recorder = NotificationRecorder()
    server.notification_sink.attach(recorder)

    server.logger.error("ignored before a level is chosen")
    await server.logging_service.emit("error", {"message": "direct"})
    assert recorder.notifications == []

    await server.handle("logging/setLevel", {"level": "warning"})
    await server.logging_service.emit("info", {"message": "too quiet"})
    await server.logging_service.emit("error", {"message": "direct"}, "tests")
    assert recorder.methods == ["notifications/message"]
    params = recorder.notifications[0].root.params
    assert params.level == "error"
    assert params.logger == "tests"
    assert params.data == {"message": "direct"}

    server.logger.warning("disk %s", "low")
    await anyio.sleep(0.05)
    assert len(recorder.notifications) == 2
    forwarded = recorder.notifications[1].root.params
    assert forwarded.level == "warning"
    assert forwarded.data == {"message": "disk low"}
    server.close()


def test_handlers_live_in_the_sdk_table() -> None:
    server = make_server([Greet])
    assert isinstance(server, Server)
    registered = set(server.request_handlers)
    expected = {request_type for method, request_type in REQUEST_TYPES.items() if method != "initialize"}
    assert expected <= registered
