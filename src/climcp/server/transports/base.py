# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Shared transport primitives for :mod:`climcp.server`.

Provides a minimal base class that transports subclass and the factory
signature :class:`~climcp.server.core.CommandServer` uses to build them
lazily.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable


if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..core import CommandServer


class BaseTransport(ABC):
    """Common base for server transports.

    Subclasses receive the prepared :class:`CommandServer` and reach its
    dispatcher and notification sink through it.  :meth:`run` takes keyword
    arguments specific to the transport (host/port for HTTP, nothing for
    stdio).
    """

    TRANSPORT: tuple[str, ...] = ()

    def __init__(self, server: CommandServer) -> None:
        self._server = server

    @property
    def server(self) -> CommandServer:
        return self._server

    @property
    def transport_name(self) -> str:
        return self.TRANSPORT[0] if self.TRANSPORT else type(self).__name__

    @property
    def transport_display_name(self) -> str:
        return self.TRANSPORT[1] if len(self.TRANSPORT) > 1 else self.transport_name

    @abstractmethod
    async def run(self, **kwargs) -> None:
        """Serve until the peer goes away or the task is cancelled."""


@runtime_checkable
class TransportFactory(Protocol):
    """Callable that produces a transport bound to a ``CommandServer``."""

    def __call__(self, server: CommandServer) -> BaseTransport:  # pragma: no cover - protocol
        ...


__all__ = ["BaseTransport", "TransportFactory"]
