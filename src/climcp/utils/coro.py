# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Helpers for calling user code that may or may not be async."""

from __future__ import annotations

from collections.abc import Callable
import inspect
from typing import Any

import anyio


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def call_in_worker(fn: Callable[..., Any], *args: Any) -> Any:
    """Await coroutine functions; run anything else in a worker thread.

    The thread is abandoned when the caller is cancelled, so a surrounding
    ``anyio.fail_after`` still fires for blocking code.
    """
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await anyio.to_thread.run_sync(fn, *args, abandon_on_cancel=True)
    return await maybe_await(result)


def accepts_positional(fn: Callable[..., Any]) -> bool:
    """Return whether ``fn`` can be called with one positional argument."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return False
    for param in signature.parameters.values():
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            return True
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
    return False


__all__ = ["accepts_positional", "call_in_worker", "maybe_await"]
