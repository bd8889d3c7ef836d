# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Exception types raised by climcp.

Protocol-level failures are :class:`mcp.shared.exceptions.McpError` so they
serialize straight into JSON-RPC error objects; :func:`protocol_error` builds
them.  Everything else derives from :class:`ClimcpError`.
"""

from __future__ import annotations

from typing import Any

from mcp.shared.exceptions import McpError

from . import types


class ClimcpError(Exception):
    """Base class for non-protocol errors."""


class ConfigurationError(ClimcpError):
    """Invalid or unsatisfiable configuration; aborts startup."""


class ToolLimitExceededError(ConfigurationError):
    """Raised by the ``strict`` strategy when too many commands survive filtering."""

    def __init__(self, count: int, max_tools: int) -> None:
        super().__init__(
            f"Tool limit exceeded: {count} commands would be exposed but maxTools is {max_tools}. "
            "Narrow the selection with topics/commands filters or raise toolLimits.maxTools."
        )
        self.count = count
        self.max_tools = max_tools


class CommandError(ClimcpError):
    """A command rejected its arguments or failed while running."""


def protocol_error(code: int, message: str, data: Any | None = None) -> McpError:
    return McpError(types.ErrorData(code=code, message=message, data=data))


def tool_not_found(name: str) -> McpError:
    return protocol_error(types.TOOL_NOT_FOUND, f"Tool not found: {name}")


def resource_not_found(uri: str, data: Any | None = None) -> McpError:
    return protocol_error(types.RESOURCE_NOT_FOUND, f"Resource not found: {uri}", data)


def prompt_not_found(name: str) -> McpError:
    return protocol_error(types.PROMPT_NOT_FOUND, f"Prompt not found: {name}")


def invalid_params(message: str, data: Any | None = None) -> McpError:
    return protocol_error(types.INVALID_PARAMS, message, data)


__all__ = [
    "ClimcpError",
    "CommandError",
    "ConfigurationError",
    "McpError",
    "ToolLimitExceededError",
    "invalid_params",
    "prompt_not_found",
    "protocol_error",
    "resource_not_found",
    "tool_not_found",
]
