# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Capability services backing the protocol handlers."""

from __future__ import annotations

from .logging import LoggingService
from .prompts import PromptsService
from .resources import ResourcesService
from .tools import ToolsService


__all__ = ["LoggingService", "PromptsService", "ResourcesService", "ToolsService"]
