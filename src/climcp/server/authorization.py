# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Bearer-token gate for the HTTP transport.

climcp does not issue tokens.  It only checks that a request carries a
bearer token, hands the token to an :class:`AuthorizationProvider`, and
answers ``401`` with a ``WWW-Authenticate`` challenge when validation fails.

Key pieces:

* :class:`AuthorizationConfig` - opt-in server configuration.
* :class:`AuthorizationProvider` protocol - pluggable token validation.  The
  default :class:`BearerShapeProvider` accepts any well-formed token.
* :class:`AuthorizationManager` - serves protected-resource metadata and wraps
  ASGI apps with bearer-token enforcement.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import re
from typing import Any, Protocol

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..utils import get_logger


AUTH_SCOPE_KEY = "climcp.auth"

_TOKEN_RE = re.compile(r"^[A-Za-z0-9\-._~+/]+=*$")


@dataclass(slots=True)
class AuthorizationConfig:
    """Server-side authorization configuration."""

    enabled: bool = False
    metadata_path: str = "/.well-known/oauth-protected-resource"
    authorization_servers: list[str] = field(default_factory=list)
    required_scopes: list[str] = field(default_factory=list)
    exempt_paths: tuple[str, ...] = ("/health",)
    cache_ttl: int = 300
    fail_open: bool = False


@dataclass(slots=True)
class AuthorizationContext:
    """Context returned by providers after successful validation."""

    subject: str | None
    scopes: list[str]
    claims: dict[str, Any]


class AuthorizationError(Exception):
    """Raised when token validation fails."""


class AuthorizationProvider(Protocol):
    async def validate(self, token: str) -> AuthorizationContext:
        """Validate a bearer token and return the associated context."""


class BearerShapeProvider:
    """Accept tokens that look like RFC 6750 bearer tokens of a minimum length."""

    def __init__(self, min_length: int = 20) -> None:
        self.min_length = min_length

    async def validate(self, token: str) -> AuthorizationContext:
        if len(token) < self.min_length:
            raise AuthorizationError("token too short")
        if not _TOKEN_RE.match(token):
            raise AuthorizationError("malformed token")
        return AuthorizationContext(subject=None, scopes=[], claims={})


class AuthorizationManager:
    """Coordinates metadata serving and ASGI middleware for authorization."""

    def __init__(
        self,
        config: AuthorizationConfig,
        provider: AuthorizationProvider | None = None,
    ) -> None:
        self.config = config
        self._provider: AuthorizationProvider = provider or BearerShapeProvider()
        self._logger = get_logger("climcp.authorization")

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def set_provider(self, provider: AuthorizationProvider) -> None:
        self._provider = provider

    def is_exempt(self, path: str) -> bool:
        return path == self.config.metadata_path or path in self.config.exempt_paths

    # ------------------------------------------------------------------
    # Starlette integration
    # ------------------------------------------------------------------

    def starlette_route(self) -> Route:
        async def metadata_endpoint(request: Request) -> Response:
            payload = {
                "resource": self._canonical_resource(request),
                "authorization_servers": self.config.authorization_servers,
                "scopes_supported": self.config.required_scopes,
            }
            headers = {"Cache-Control": f"public, max-age={self.config.cache_ttl}"}
            return JSONResponse(payload, headers=headers)

        return Route(self.config.metadata_path, metadata_endpoint, methods=["GET"])

    def wrap_asgi(self, app: Callable) -> Callable:
        manager = self

        class _Middleware(BaseHTTPMiddleware):
            async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:  # type: ignore[override]
                if manager.is_exempt(request.url.path):
                    return await call_next(request)

                auth_header = request.headers.get("authorization")
                if not auth_header or not auth_header.lower().startswith("bearer "):
                    return manager._challenge_response("missing bearer token")

                token = auth_header[7:].strip()
                try:
                    context = await manager._provider.validate(token)
                except AuthorizationError as exc:
                    manager._logger.warning("authorization failed: %s", exc)
                    if not manager.config.fail_open:
                        return manager._challenge_response(str(exc))
                    manager._logger.warning("authorization fail-open engaged; allowing request")
                    context = None
                request.scope[AUTH_SCOPE_KEY] = context
                return await call_next(request)

        return _Middleware(app)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _challenge_response(self, reason: str | None = None) -> Response:
        challenge = f'Bearer error="invalid_token", resource_metadata="{self.config.metadata_path}"'
        headers = {"WWW-Authenticate": challenge}
        payload = {"error": "unauthorized", "detail": reason}
        return JSONResponse(payload, status_code=401, headers=headers)

    def _canonical_resource(self, request: Request) -> str:
        # scheme://host[:port] without trailing slash
        scheme = request.headers.get("x-forwarded-proto", request.url.scheme)
        host = request.headers.get("x-forwarded-host", request.headers.get("host", ""))
        if not host:
            host = request.url.netloc
        return f"{scheme}://{host}".rstrip("/")


__all__ = [
    "AUTH_SCOPE_KEY",
    "AuthorizationConfig",
    "AuthorizationContext",
    "AuthorizationError",
    "AuthorizationManager",
    "AuthorizationProvider",
    "BearerShapeProvider",
]
