# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Shared ASGI transport primitives.

Concrete subclasses supply routes and a lifespan; this base class assembles
the Starlette application, applies optional authorization wrapping, and runs
it under uvicorn.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from uvicorn import Config, Server

from .base import BaseTransport


if TYPE_CHECKING:
    from starlette.types import ASGIApp

    from ..authorization import AuthorizationManager
    from ..core import CommandServer


class ASGITransportBase(BaseTransport, ABC):
    """Template for transports that present a :class:`CommandServer` via ASGI."""

    DEFAULT_HOST: str = "127.0.0.1"
    DEFAULT_PORT: int = 3000
    DEFAULT_LOG_LEVEL: str = "warning"

    def __init__(self, server: CommandServer) -> None:
        super().__init__(server)

    @property
    def authorization(self) -> AuthorizationManager | None:
        return getattr(self.server, "authorization_manager", None)

    async def run(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        log_level: str | None = None,
        **uvicorn_options: Any,
    ) -> None:
        host = host or self.DEFAULT_HOST
        port = port or self.DEFAULT_PORT
        log_level = log_level or self.DEFAULT_LOG_LEVEL
        await self._serve(host, port, log_level, uvicorn_options)

    async def _serve(self, host: str, port: int, log_level: str, uvicorn_options: dict[str, Any]) -> None:
        app = self.build_app()
        config = Config(app=app, host=host, port=port, log_level=log_level, log_config=None, **uvicorn_options)
        server_instance = Server(config)
        self.server.logger.info("%s transport listening on http://%s:%d", self.transport_display_name, host, port)
        await server_instance.serve()

    def build_app(self) -> ASGIApp:
        """Assemble the ASGI application without starting a server."""
        routes = list(self._build_routes())

        authorization = self.authorization
        if authorization and authorization.enabled:
            routes.append(authorization.starlette_route())

        @asynccontextmanager
        async def _lifespan(_app: Starlette) -> AsyncIterator[None]:  # pragma: no cover - exercised via uvicorn
            async with self.lifespan():
                yield

        app: ASGIApp = self._to_asgi(Starlette(routes=routes, lifespan=_lifespan))
        if authorization and authorization.enabled:
            app = authorization.wrap_asgi(app)
        return app

    def _to_asgi(self, app: Starlette) -> ASGIApp:
        """Hook for subclasses to wrap the Starlette app before serving."""
        return app

    @abstractmethod
    def lifespan(self) -> Any:
        """Async context manager held open while the server runs."""

    @abstractmethod
    def _build_routes(self) -> Iterable[object]: ...


__all__ = ["ASGITransportBase"]
