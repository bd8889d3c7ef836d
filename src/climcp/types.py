# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""MCP schema bindings plus the error codes climcp adds on top.

Everything from ``mcp.types`` is re-exported so the rest of the package has a
single import site for protocol models.  The three ``*_NOT_FOUND`` codes live
in the implementation-defined server error range (-32000 to -32099).
"""

from __future__ import annotations

from typing import Final

from mcp import types as _types


_SDK_NAMES = tuple(name for name in dir(_types) if not name.startswith("_"))
globals().update({name: getattr(_types, name) for name in _SDK_NAMES})

TOOL_NOT_FOUND: Final[int] = -32001
RESOURCE_NOT_FOUND: Final[int] = -32002
PROMPT_NOT_FOUND: Final[int] = -32003

__all__ = (*_SDK_NAMES, "TOOL_NOT_FOUND", "RESOURCE_NOT_FOUND", "PROMPT_NOT_FOUND")
