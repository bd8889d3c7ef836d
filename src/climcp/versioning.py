# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Protocol revisions spoken by climcp."""

from __future__ import annotations

from typing import Final


LATEST_PROTOCOL_VERSION: Final[str] = "2025-06-18"

SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = ("2025-06-18", "2025-03-26")

# HTTP clients that omit the MCP-Protocol-Version header predate it.
ASSUMED_HTTP_PROTOCOL_VERSION: Final[str] = "2025-03-26"


def is_supported(version: str | None) -> bool:
    return version in SUPPORTED_PROTOCOL_VERSIONS


def negotiate_version(requested: str | None) -> str:
    """Echo a supported client version, otherwise offer the latest one."""
    if requested is not None and is_supported(requested):
        return requested
    return LATEST_PROTOCOL_VERSION


__all__ = [
    "ASSUMED_HTTP_PROTOCOL_VERSION",
    "LATEST_PROTOCOL_VERSION",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "is_supported",
    "negotiate_version",
]
