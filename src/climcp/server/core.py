# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Server orchestrator built on the reference SDK.

:class:`CommandServer` is an ``mcp.server.lowlevel.Server`` whose request
handler table routes to the climcp services.  It also owns everything that
lives for the whole process: the merged configuration, the filter result,
the tool/resource/prompt catalogs, subscriptions, the notification service,
the HTTP dispatcher, and the transport registry.  Nothing here is
module-global, so several servers can coexist in one process (the test-suite
relies on that).

Startup happens once in :meth:`CommandServer.prepare`, which moves the
dispatcher from ``UNINITIALIZED`` to ``READY`` before any transport accepts
traffic::

    server = CommandServer(registry, config=load_config("climcp.toml"))
    await server.serve(transport="stdio")
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from contextlib import AsyncExitStack
from functools import wraps
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import IO, Any

from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.lowlevel.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from mcp.server.session import ServerSession
from mcp.shared.exceptions import McpError
from mcp.shared.message import SessionMessage
from pydantic import BaseModel

from .authorization import AuthorizationConfig, AuthorizationManager, AuthorizationProvider
from .dispatch import Dispatcher, ServerState
from .filtering import FilterResult, filter_commands
from .notifications import DEFAULT_DEBOUNCE_DELAY, BroadcastSink, NotificationService, Sleep
from .reporting import write_filter_report
from .services import LoggingService, PromptsService, ResourcesService, ToolsService
from .subscriptions import SubscriptionManager
from .transports import StdioTransport, StreamableHTTPTransport
from .transports.base import BaseTransport, TransportFactory
from .. import types
from ..command import CommandSpec
from ..config import ConfigOverrides, McpConfig, build_config
from ..exceptions import protocol_error
from ..registry import CommandLike, as_spec
from ..utils import get_logger


def _default_version() -> str:
    try:
        return package_version("climcp")
    except PackageNotFoundError:
        return "0.0.0"


def _cursor(request: Any) -> str | None:
    params = getattr(request, "params", None)
    return params.cursor if params is not None else None


class CommandServer(Server[Any, Any]):
    """Expose a set of host commands as an MCP server."""

    _PAGINATION_LIMIT = 50

    def __init__(
        self,
        commands: Iterable[CommandLike] = (),
        *,
        name: str = "climcp",
        version: str | None = None,
        instructions: str | None = None,
        config: McpConfig | Mapping[str, Any] | None = None,
        overrides: ConfigOverrides | None = None,
        transport: str | None = None,
        authorization: AuthorizationConfig | None = None,
        notification_sink: BroadcastSink | None = None,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        sleep: Sleep | None = None,
        show_filtered: bool = False,
        report_stream: IO[str] | None = None,
    ) -> None:
        super().__init__(name, version=version or _default_version(), instructions=instructions)
        self._logger = get_logger(f"climcp.server.{name}")
        self.config: McpConfig = build_config(config, overrides)
        self._commands: list[CommandSpec] = [as_spec(item) for item in commands]
        self._default_transport = (transport or "stdio").lower()
        self._show_filtered = show_filtered
        self._report_stream = report_stream
        self._filter_result: FilterResult | None = None

        self.notification_sink: BroadcastSink = notification_sink or BroadcastSink(self._logger)
        self.subscriptions = SubscriptionManager()
        self.notifications = NotificationService(
            self.notification_sink, self.subscriptions, delay=debounce_delay, sleep=sleep, logger=self._logger
        )
        self.tools = ToolsService(
            logger=self._logger, pagination_limit=self._PAGINATION_LIMIT, timeout=self.config.tool_timeout
        )
        self.resources = ResourcesService(
            logger=self._logger, notifications=self.notifications, pagination_limit=self._PAGINATION_LIMIT
        )
        self.prompts = PromptsService(logger=self._logger, pagination_limit=self._PAGINATION_LIMIT)
        self.logging_service = LoggingService(self.notification_sink)
        self.dispatcher = Dispatcher(self)

        self._authorization_manager: AuthorizationManager | None = None
        if authorization and authorization.enabled:
            self._authorization_manager = AuthorizationManager(authorization)

        self._transport_factories: dict[str, TransportFactory] = {}
        self.register_transport("stdio", lambda server: StdioTransport(server))
        self.register_transport(
            "streamable-http",
            lambda server: StreamableHTTPTransport(server),
            aliases=("streamable_http", "shttp", "http"),
        )

        self._register_handlers()

    # //////////////////////////////////////////////////////////////////
    # Request handlers
    # //////////////////////////////////////////////////////////////////

    def _route(self, request_type: type) -> Callable[[Callable[[Any], Awaitable[BaseModel]]], Any]:
        """Install a handler for ``request_type`` in the SDK handler table.

        Protocol errors pass through; anything else is logged and becomes
        ``INTERNAL_ERROR``.
        """

        def decorator(func: Callable[[Any], Awaitable[BaseModel]]) -> Callable[[Any], Awaitable[BaseModel]]:
            @wraps(func)
            async def handler(request: Any) -> types.ServerResult:
                try:
                    return types.ServerResult(await func(request))
                except McpError:
                    raise
                except Exception as exc:
                    self._logger.exception("Unhandled error while processing %s", request.method)
                    raise protocol_error(types.INTERNAL_ERROR, "Internal error") from exc

            self.request_handlers[request_type] = handler
            return func

        return decorator

    def _register_handlers(self) -> None:
        @self._route(types.ListToolsRequest)
        async def _list_tools(request: types.ListToolsRequest) -> types.ListToolsResult:
            return await self.tools.list_tools(_cursor(request))

        @self._route(types.CallToolRequest)
        async def _call_tool(request: types.CallToolRequest) -> types.CallToolResult:
            return await self.tools.call_tool(request.params.name, request.params.arguments)

        @self._route(types.ListResourcesRequest)
        async def _list_resources(request: types.ListResourcesRequest) -> types.ListResourcesResult:
            cursor = _cursor(request)
            result = await self.resources.list_resources(cursor)
            if cursor is None:
                # roots ride along on the first page
                return types.ListResourcesResult(
                    resources=result.resources, nextCursor=result.nextCursor, roots=self.resources.list_roots()
                )
            return result

        @self._route(types.ListResourceTemplatesRequest)
        async def _list_templates(request: types.ListResourceTemplatesRequest) -> types.ListResourceTemplatesResult:
            return await self.resources.list_templates(_cursor(request))

        @self._route(types.ReadResourceRequest)
        async def _read_resource(request: types.ReadResourceRequest) -> types.ReadResourceResult:
            return await self.resources.read(str(request.params.uri))

        @self._route(types.SubscribeRequest)
        async def _subscribe(request: types.SubscribeRequest) -> types.EmptyResult:
            self.subscriptions.subscribe(str(request.params.uri))
            return types.EmptyResult()

        @self._route(types.UnsubscribeRequest)
        async def _unsubscribe(request: types.UnsubscribeRequest) -> types.EmptyResult:
            self.subscriptions.unsubscribe(str(request.params.uri))
            return types.EmptyResult()

        @self._route(types.ListPromptsRequest)
        async def _list_prompts(request: types.ListPromptsRequest) -> types.ListPromptsResult:
            return await self.prompts.list_prompts(_cursor(request))

        @self._route(types.GetPromptRequest)
        async def _get_prompt(request: types.GetPromptRequest) -> types.GetPromptResult:
            return await self.prompts.get_prompt(request.params.name, request.params.arguments)

        @self._route(types.SetLevelRequest)
        async def _set_logging_level(request: types.SetLevelRequest) -> types.EmptyResult:
            await self.logging_service.set_level(request.params.level)
            return types.EmptyResult()

    def get_capabilities(
        self, notification_options: NotificationOptions, experimental_capabilities: dict[str, dict[str, Any]]
    ) -> types.ServerCapabilities:
        return types.ServerCapabilities(
            tools=types.ToolsCapability(listChanged=True),
            resources=types.ResourcesCapability(subscribe=True, listChanged=True),
            prompts=types.PromptsCapability(listChanged=True),
            logging=types.LoggingCapability(),
        )

    async def run(
        self,
        read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
        write_stream: MemoryObjectSendStream[SessionMessage],
        initialization_options: InitializationOptions,
        raise_exceptions: bool = False,
        stateless: bool = False,
    ) -> None:
        """Serve one SDK session, answering requests strictly in arrival order."""
        async with AsyncExitStack() as stack:
            lifespan_context = await stack.enter_async_context(self.lifespan(self))
            session = await stack.enter_async_context(
                ServerSession(read_stream, write_stream, initialization_options, stateless=stateless)
            )
            async for message in session.incoming_messages:
                await self._handle_message(message, session, lifespan_context, raise_exceptions)

    # //////////////////////////////////////////////////////////////////
    # Introspection
    # //////////////////////////////////////////////////////////////////

    @property
    def logger(self):
        return self._logger

    @property
    def commands(self) -> list[CommandSpec]:
        return list(self._commands)

    @property
    def state(self) -> ServerState:
        return self.dispatcher.state

    @property
    def is_ready(self) -> bool:
        return self.dispatcher.state is ServerState.READY

    @property
    def filter_result(self) -> FilterResult | None:
        return self._filter_result

    @property
    def authorization_manager(self) -> AuthorizationManager | None:
        return self._authorization_manager

    def set_authorization_provider(self, provider: AuthorizationProvider) -> None:
        if self._authorization_manager is None:
            raise RuntimeError("Authorization is not enabled for this server")
        self._authorization_manager.set_provider(provider)

    # //////////////////////////////////////////////////////////////////
    # Startup
    # //////////////////////////////////////////////////////////////////

    async def prepare(self) -> FilterResult:
        """Filter commands and build every catalog; later calls are no-ops.

        Raises:
            ToolLimitExceededError: Under the ``strict`` strategy when too many
                commands survive filtering.
        """
        if self._filter_result is not None:
            return self._filter_result

        result = filter_commands(self._commands, self.config)
        if self._show_filtered:
            write_filter_report(result, self.config, self._report_stream)

        await self.resources.collect(result.filtered)
        await self.prompts.collect(result.filtered)
        self.tools.register_commands(result.filtered)

        self._filter_result = result
        self.dispatcher.mark_ready()
        self._logger.info(
            "%s ready: %d tools, %d resources, %d resource templates, %d prompts (%d commands excluded)",
            self.name,
            len(self.tools.tool_names),
            len(self.resources.resources),
            len(self.resources.templates),
            len(self.prompts.prompt_names),
            len(result.excluded),
        )
        return result

    # //////////////////////////////////////////////////////////////////
    # Transport registry
    # //////////////////////////////////////////////////////////////////

    def register_transport(self, name: str, factory: TransportFactory, *, aliases: Iterable[str] | None = None) -> None:
        canonical = name.lower()
        self._transport_factories[canonical] = factory
        for alias in aliases or ():
            self._transport_factories[alias.lower()] = factory

    def _transport_for_name(self, name: str) -> BaseTransport:
        factory = self._transport_factories.get(name.lower())
        if factory is None:
            raise ValueError(f"Unsupported transport '{name}'.")
        transport = factory(self)
        if not isinstance(transport, BaseTransport):
            raise TypeError("Transport factory must return a BaseTransport instance")
        return transport

    # //////////////////////////////////////////////////////////////////
    # Serving
    # //////////////////////////////////////////////////////////////////

    async def serve(self, *, transport: str | None = None, **transport_kwargs: Any) -> None:
        selected = (transport or self._default_transport).lower()
        transport_instance = self._transport_for_name(selected)
        await self.prepare()
        self._logger.info("Serving %s via %s", self.name, transport_instance.transport_display_name)
        try:
            await transport_instance.run(**transport_kwargs)
        finally:
            self.close()

    async def serve_stdio(self) -> None:
        await self.serve(transport="stdio")

    async def serve_streamable_http(
        self, *, host: str = "127.0.0.1", port: int = 3000, log_level: str | None = None, **uvicorn_options: Any
    ) -> None:
        await self.serve(transport="streamable-http", host=host, port=port, log_level=log_level, **uvicorn_options)

    def close(self) -> None:
        """Cancel pending notification work and detach log forwarding."""
        self.notifications.close()
        self.logging_service.close()

    # //////////////////////////////////////////////////////////////////
    # Embedding helpers
    # //////////////////////////////////////////////////////////////////

    async def handle(self, method: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Run one protocol method and return its JSON result object."""
        await self.prepare()
        return await self.dispatcher.call(method, params)

    async def invoke_tool(self, name: str, arguments: Mapping[str, Any] | None = None) -> types.CallToolResult:
        await self.prepare()
        return await self.tools.call_tool(name, arguments)

    async def invoke_resource(self, uri: str) -> types.ReadResourceResult:
        await self.prepare()
        return await self.resources.read(uri)

    async def invoke_prompt(self, name: str, arguments: Mapping[str, Any] | None = None) -> types.GetPromptResult:
        await self.prepare()
        return await self.prompts.get_prompt(name, arguments)


__all__ = ["CommandServer"]
