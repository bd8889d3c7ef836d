# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Resource subscription bookkeeping.

Subscriptions are a plain set of URIs owned by the server.  Both operations
are idempotent: subscribing twice equals subscribing once and unsubscribing
from an unknown URI is a successful no-op.
"""

from __future__ import annotations

from collections.abc import Iterator


class SubscriptionManager:
    def __init__(self) -> None:
        self._uris: set[str] = set()

    def subscribe(self, uri: str) -> None:
        self._uris.add(uri)

    def unsubscribe(self, uri: str) -> None:
        self._uris.discard(uri)

    def is_subscribed(self, uri: str) -> bool:
        return uri in self._uris

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._uris)

    def __contains__(self, uri: object) -> bool:
        return uri in self._uris

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._uris))

    def __len__(self) -> int:
        return len(self._uris)


__all__ = ["SubscriptionManager"]
