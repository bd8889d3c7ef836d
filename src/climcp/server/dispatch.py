# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Feed single JSON-RPC messages into the server's SDK handler table.

Over stdio the SDK's ``ServerSession`` owns the connection and calls the
handlers registered on :class:`~climcp.server.core.CommandServer` itself.  The
HTTP transport has no long-lived SDK session, so it hands each parsed
:class:`~mcp.types.JSONRPCMessage` to :class:`Dispatcher` instead, which
validates the request into its ``mcp.types`` model, answers ``initialize``
and runs the same handler the SDK would.

Every failure inside a request becomes a JSON-RPC error object.  Protocol
failures carry their own code (:mod:`climcp.exceptions`); anything unexpected
is logged and reported as ``INTERNAL_ERROR``.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from mcp.server.lowlevel.server import NotificationOptions
from mcp.shared.exceptions import McpError
import orjson
from pydantic import BaseModel, ValidationError

from .. import types
from ..exceptions import invalid_params, protocol_error
from ..versioning import negotiate_version


if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .core import CommandServer


REQUEST_TYPES: dict[str, type[BaseModel]] = {
    "initialize": types.InitializeRequest,
    "ping": types.PingRequest,
    "tools/list": types.ListToolsRequest,
    "tools/call": types.CallToolRequest,
    "resources/list": types.ListResourcesRequest,
    "resources/templates/list": types.ListResourceTemplatesRequest,
    "resources/read": types.ReadResourceRequest,
    "resources/subscribe": types.SubscribeRequest,
    "resources/unsubscribe": types.UnsubscribeRequest,
    "prompts/list": types.ListPromptsRequest,
    "prompts/get": types.GetPromptRequest,
    "logging/setLevel": types.SetLevelRequest,
}


class ServerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


def parse_message(body: bytes | str) -> types.JSONRPCMessage:
    """Decode one JSON-RPC message.

    Raises:
        McpError: ``PARSE_ERROR`` for invalid JSON, ``INVALID_REQUEST`` for
            anything that is not a JSON-RPC 2.0 envelope.
    """
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise protocol_error(types.PARSE_ERROR, "Parse error", str(exc)) from exc
    try:
        return types.JSONRPCMessage.model_validate(data)
    except ValidationError as exc:
        raise protocol_error(types.INVALID_REQUEST, "Invalid Request", str(exc)) from exc


def dump_message(message: types.JSONRPCMessage | BaseModel) -> dict[str, Any]:
    return message.model_dump(by_alias=True, mode="json", exclude_none=True)


def error_payload(error: types.ErrorData, request_id: types.RequestId | None = None) -> dict[str, Any]:
    """JSON-RPC error body; ``id`` is ``null`` when the request id is unknown."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": error.model_dump(mode="json", exclude_none=True),
    }


def method_not_found(method: str) -> McpError:
    return protocol_error(types.METHOD_NOT_FOUND, f"Method not found: {method}")


class Dispatcher:
    def __init__(self, server: CommandServer) -> None:
        self._server = server
        self.state = ServerState.UNINITIALIZED

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(REQUEST_TYPES)

    def mark_ready(self) -> None:
        self.state = ServerState.READY

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_message(self, message: types.JSONRPCMessage) -> types.JSONRPCMessage | None:
        root = message.root
        if isinstance(root, types.JSONRPCRequest):
            return types.JSONRPCMessage(await self.handle_request(root))
        if isinstance(root, types.JSONRPCNotification):
            self._server.logger.debug("Received notification %s", root.method)
        return None

    async def handle_request(self, request: types.JSONRPCRequest) -> types.JSONRPCResponse | types.JSONRPCError:
        try:
            result = await self.call(request.method, request.params)
        except McpError as exc:
            return types.JSONRPCError(jsonrpc="2.0", id=request.id, error=exc.error)
        except Exception:
            self._server.logger.exception("Unhandled error while processing %s", request.method)
            return types.JSONRPCError(
                jsonrpc="2.0",
                id=request.id,
                error=types.ErrorData(code=types.INTERNAL_ERROR, message="Internal error"),
            )
        return types.JSONRPCResponse(jsonrpc="2.0", id=request.id, result=result)

    async def call(self, method: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Run ``method`` through the handler table and return the JSON result.

        Raises:
            McpError: For every protocol-level failure.
        """
        if self.state is not ServerState.READY:
            raise protocol_error(types.INTERNAL_ERROR, "Server is not ready")
        request_type = REQUEST_TYPES.get(method)
        if request_type is None:
            raise method_not_found(method)
        if params is not None and not isinstance(params, Mapping):
            raise invalid_params("Params must be an object")
        try:
            request = request_type.model_validate({"method": method, "params": dict(params) if params else None})
        except ValidationError as exc:
            raise invalid_params(f"Invalid params: {exc.error_count()} error(s)", str(exc)) from exc

        if isinstance(request, types.InitializeRequest):
            result: BaseModel = self._initialize(request.params)
        else:
            handler = self._server.request_handlers.get(request_type)
            if handler is None:
                raise method_not_found(method)
            result = await handler(request)
        return result.model_dump(by_alias=True, mode="json", exclude_none=True)

    def _initialize(self, params: types.InitializeRequestParams) -> types.InitializeResult:
        version = negotiate_version(str(params.protocolVersion))
        self._server.logger.info(
            "Client %s %s initialized (protocol %s)", params.clientInfo.name, params.clientInfo.version, version
        )
        return types.InitializeResult(
            protocolVersion=version,
            capabilities=self._server.get_capabilities(NotificationOptions(), {}),
            serverInfo=types.Implementation(name=self._server.name, version=self._server.version or "0.0.0"),
            instructions=self._server.instructions,
        )


__all__ = [
    "Dispatcher",
    "REQUEST_TYPES",
    "ServerState",
    "dump_message",
    "error_payload",
    "method_not_found",
    "parse_message",
]
