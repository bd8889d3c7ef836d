# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Public server-side surface for climcp.

The heavy lifting lives in :mod:`climcp.server.core`; this module re-exports
the primitives host applications are expected to import.
"""

from __future__ import annotations

from .authorization import AuthorizationConfig, AuthorizationManager, BearerShapeProvider
from .core import CommandServer
from .dispatch import Dispatcher, ServerState
from .filtering import ExclusionReason, FilterResult, apply_tool_limit, filter_commands
from .notifications import BroadcastSink, NotificationService


__all__ = [
    "AuthorizationConfig",
    "AuthorizationManager",
    "BearerShapeProvider",
    "BroadcastSink",
    "CommandServer",
    "Dispatcher",
    "ExclusionReason",
    "FilterResult",
    "NotificationService",
    "ServerState",
    "apply_tool_limit",
    "filter_commands",
]
