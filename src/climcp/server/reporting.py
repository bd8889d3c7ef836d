# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Human-readable summary of a filtering run (``--show-filtered``)."""

from __future__ import annotations

from typing import IO
import sys

from .filtering import FilterResult
from ..config import McpConfig


REPORT_ITEM_LIMIT = 20


def render_filter_report(result: FilterResult, config: McpConfig, *, limit: int = REPORT_ITEM_LIMIT) -> str:
    total = len(result.filtered) + len(result.excluded)
    lines = [
        "",
        "Command Filtering Report",
        "",
        "Statistics:",
        f"  - Total commands: {total}",
        f"  - Included: {len(result.filtered)}",
        f"  - Excluded: {len(result.excluded)}",
        f"  - Tool limit: {config.max_tools} (strategy: {config.strategy})",
        "",
    ]

    if result.excluded:
        lines.append(f"Excluded Commands ({len(result.excluded)}):")
        for item in result.excluded[:limit]:
            lines.append(f"  - {item.command.id} ({item.reason.value})")
        if len(result.excluded) > limit:
            lines.append(f"  ... and {len(result.excluded) - limit} more")
        lines.append("")

    lines.append(f"Included Commands ({len(result.filtered)}):")
    for command in result.filtered[:limit]:
        lines.append(f"  - {command.id}")
    if len(result.filtered) > limit:
        lines.append(f"  ... and {len(result.filtered) - limit} more")

    if result.warnings:
        lines.extend(["", "Warnings:"])
        lines.extend(f"  - {warning}" for warning in result.warnings)

    lines.extend(
        [
            "",
            "Configuration Help:",
            "  Use --include-topics to filter by topics",
            "  Use --exclude-patterns to exclude specific commands",
            "  Use --max-tools to adjust the tool limit",
            "  Use --profile to apply predefined configurations",
        ]
    )
    return "\n".join(lines) + "\n"


def write_filter_report(result: FilterResult, config: McpConfig, stream: IO[str] | None = None) -> None:
    """Write the report to ``stream`` (``stderr`` by default, never the protocol channel)."""
    target = stream if stream is not None else sys.stderr
    target.write(render_filter_report(result, config))
    target.flush()


__all__ = ["REPORT_ITEM_LIMIT", "render_filter_report", "write_filter_report"]
