# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Glob-style matching over command identifiers.

Only ``*`` is special.  Patterns are anchored at both ends, so ``auth:*``
matches ``auth:login`` but not ``oauth:login``.  Everything else is literal,
including regex metacharacters that happen to appear in command ids.
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache
import re


DEFAULT_TOPIC_SEPARATOR = ":"
WILDCARD = "*"


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    body = ".*".join(re.escape(part) for part in pattern.split(WILDCARD))
    return re.compile(rf"\A{body}\Z", re.DOTALL)


def matches_pattern(command_id: str, pattern: str) -> bool:
    if pattern == WILDCARD:
        return True
    if WILDCARD in pattern:
        return _compile(pattern).match(command_id) is not None
    return command_id == pattern


def matches_patterns(command_id: str, patterns: Iterable[str]) -> bool:
    """Return ``True`` when any of ``patterns`` matches ``command_id``."""
    return any(matches_pattern(command_id, pattern) for pattern in patterns)


def topic_of(command_id: str, separator: str = DEFAULT_TOPIC_SEPARATOR) -> str:
    """Return the first topic segment of ``command_id``."""
    return command_id.split(separator, 1)[0]


def matches_topic(command_id: str, topics: Iterable[str], separator: str = DEFAULT_TOPIC_SEPARATOR) -> bool:
    topic = topic_of(command_id, separator)
    return any(candidate == WILDCARD or candidate == topic for candidate in topics)


__all__ = [
    "DEFAULT_TOPIC_SEPARATOR",
    "WILDCARD",
    "matches_pattern",
    "matches_patterns",
    "matches_topic",
    "topic_of",
]
