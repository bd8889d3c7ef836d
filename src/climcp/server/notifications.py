# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Server-to-client notifications.

``notifications/resources/list_changed`` is debounced: each request adds a
reason to a pending set and replaces the single scheduled task, so a burst of
catalog changes during startup reaches clients as one notification.
``notifications/resources/updated`` is sent immediately, and only for URIs a
client subscribed to.  Tool and prompt list changes are sent immediately.

Notifications fan out through a :class:`BroadcastSink`; each transport
attaches a delivery callback for its connections and detaches it when done.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import itertools
from typing import Any, Protocol

from .subscriptions import SubscriptionManager
from .. import types
from ..utils import get_logger


DEFAULT_DEBOUNCE_DELAY = 0.1

Deliver = Callable[[types.ServerNotification], Awaitable[None]]
Sleep = Callable[[float], Awaitable[Any]]


class NotificationSink(Protocol):
    async def send(self, notification: types.ServerNotification) -> None: ...


class BroadcastSink:
    """Deliver every notification to all attached targets."""

    def __init__(self, logger=None) -> None:
        self._targets: dict[int, Deliver] = {}
        self._ids = itertools.count(1)
        self._logger = logger or get_logger("climcp.notifications")

    def attach(self, deliver: Deliver) -> Callable[[], None]:
        """Register ``deliver``; returns a callable that detaches it."""
        key = next(self._ids)
        self._targets[key] = deliver

        def _detach() -> None:
            self._targets.pop(key, None)

        return _detach

    @property
    def target_count(self) -> int:
        return len(self._targets)

    async def send(self, notification: types.ServerNotification) -> None:
        for deliver in list(self._targets.values()):
            try:
                await deliver(notification)
            except Exception:  # a broken client must not break the others
                self._logger.warning(
                    "Failed to deliver %s", notification.root.method, exc_info=True
                )


def to_jsonrpc(notification: types.ServerNotification) -> types.JSONRPCMessage:
    """Wrap a server notification in its JSON-RPC envelope."""
    payload = notification.model_dump(by_alias=True, mode="json", exclude_none=True)
    return types.JSONRPCMessage(types.JSONRPCNotification(jsonrpc="2.0", **payload))


class NotificationService:
    def __init__(
        self,
        sink: NotificationSink,
        subscriptions: SubscriptionManager,
        *,
        delay: float = DEFAULT_DEBOUNCE_DELAY,
        sleep: Sleep | None = None,
        logger=None,
    ) -> None:
        self._sink = sink
        self._subscriptions = subscriptions
        self._delay = delay
        self._sleep: Sleep = sleep or asyncio.sleep
        self._logger = logger or get_logger("climcp.notifications")
        self._pending: set[str] = set()
        self._task: asyncio.Task[None] | None = None

    @property
    def pending_reasons(self) -> frozenset[str]:
        return frozenset(self._pending)

    @property
    def has_scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def notify_resource_list_changed(self, reason: str = "changed") -> None:
        """Record ``reason`` and restart the coalescing window.

        Must be called from within the running event loop.
        """
        self._pending.add(reason)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._fire_after_delay())

    async def _fire_after_delay(self) -> None:
        await self._sleep(self._delay)
        reasons = sorted(self._pending)
        self._pending.clear()
        self._task = None
        self._logger.debug("Emitting resources/list_changed for %s", ", ".join(reasons))
        await self._sink.send(
            types.ServerNotification(
                types.ResourceListChangedNotification(method="notifications/resources/list_changed")
            )
        )

    async def wait_scheduled(self) -> None:
        """Wait for the currently scheduled list-changed task, if any."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            # Replaced by a newer request; wait for that one instead.
            await self.wait_scheduled()

    async def notify_resource_updated(self, uri: str) -> bool:
        """Send ``notifications/resources/updated`` when ``uri`` is subscribed.

        Returns:
            Whether a notification was sent.
        """
        if not self._subscriptions.is_subscribed(uri):
            return False
        params = types.ResourceUpdatedNotificationParams(uri=uri)
        await self._sink.send(
            types.ServerNotification(
                types.ResourceUpdatedNotification(method="notifications/resources/updated", params=params)
            )
        )
        return True

    async def notify_tools_list_changed(self) -> None:
        await self._sink.send(
            types.ServerNotification(types.ToolListChangedNotification(method="notifications/tools/list_changed"))
        )

    async def notify_prompts_list_changed(self) -> None:
        await self._sink.send(
            types.ServerNotification(types.PromptListChangedNotification(method="notifications/prompts/list_changed"))
        )

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._pending.clear()


__all__ = [
    "DEFAULT_DEBOUNCE_DELAY",
    "BroadcastSink",
    "NotificationService",
    "NotificationSink",
    "to_jsonrpc",
]
