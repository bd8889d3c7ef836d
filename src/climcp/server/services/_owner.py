# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Shared plumbing for collecting catalog items from a command."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ...command import CommandSpec
from ...utils.coro import maybe_await


class CommandOwner:
    """Lazily created command instance that owns bound handlers and providers.

    The instance is built at most once per collection pass; if construction
    fails the failure is logged and the owner stays empty.
    """

    def __init__(self, command: CommandSpec, logger) -> None:
        self.command = command
        self._logger = logger
        self._instance: Any | None = None
        self._attempted = False

    def get(self) -> Any | None:
        if not self._attempted:
            self._attempted = True
            try:
                self._instance = self.command.instantiate()
            except Exception:
                self._logger.warning("Could not instantiate command %s", self.command.id, exc_info=True)
        return self._instance

    async def provide(self, protocol: type, method: str) -> list[Any]:
        """Call the provider ``method`` when the instance implements ``protocol``.

        Provider failures are logged and yield no items.
        """
        instance = self.get()
        if instance is None or not isinstance(instance, protocol):
            return []
        try:
            value = await maybe_await(getattr(instance, method)())
        except Exception:
            self._logger.warning("Failed to load dynamic %s for %s", method, self.command.id, exc_info=True)
            return []
        return as_list(value)


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return list(value)
    return [value]


__all__ = ["CommandOwner", "as_list"]
