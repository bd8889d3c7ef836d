# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Opaque offset cursors for the ``*/list`` methods."""

from __future__ import annotations

import base64
from collections.abc import Sequence
from typing import TypeVar

import orjson

from ..exceptions import invalid_params


T = TypeVar("T")


def encode_cursor(offset: int) -> str:
    return base64.urlsafe_b64encode(orjson.dumps({"o": offset})).decode("ascii")


def decode_cursor(cursor: str | None) -> int:
    if not cursor:
        return 0
    try:
        payload = orjson.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        offset = int(payload["o"])
    except (ValueError, KeyError, TypeError, orjson.JSONDecodeError) as exc:
        raise invalid_params("Invalid pagination cursor", str(exc)) from exc
    if offset < 0:
        raise invalid_params("Invalid pagination cursor")
    return offset


def paginate_sequence(items: Sequence[T], cursor: str | None, *, limit: int) -> tuple[list[T], str | None]:
    """Return one page of ``items`` and the cursor for the next, if any."""
    start = decode_cursor(cursor)
    end = start + limit
    page = list(items[start:end])
    next_cursor = encode_cursor(end) if end < len(items) else None
    return page, next_cursor


__all__ = ["decode_cursor", "encode_cursor", "paginate_sequence"]
