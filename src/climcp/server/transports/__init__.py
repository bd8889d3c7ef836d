# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Transport adapters for climcp servers."""

from __future__ import annotations

from ._asgi import ASGITransportBase
from .base import BaseTransport, TransportFactory
from .sessions import HttpSession, HttpSessionManager, SessionEvent, SseConnection
from .stdio import StdioTransport
from .streamable_http import StreamableHTTPTransport


__all__ = [
    "ASGITransportBase",
    "BaseTransport",
    "HttpSession",
    "HttpSessionManager",
    "SessionEvent",
    "SseConnection",
    "StdioTransport",
    "StreamableHTTPTransport",
    "TransportFactory",
]
