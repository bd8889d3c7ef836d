# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Utility helpers for climcp."""

from __future__ import annotations

from .coro import accepts_positional, call_in_worker, maybe_await
from .logger import get_logger, setup_logger


__all__ = [
    "accepts_positional",
    "call_in_worker",
    "get_logger",
    "maybe_await",
    "setup_logger",
]
