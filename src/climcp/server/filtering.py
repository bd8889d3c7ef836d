# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Reduce the host's command set to the tools a server exposes.

Stages run in a fixed order and every elimination is final:

1. eligibility (hidden, ``disable_mcp``, ``jit`` plugins, the server command);
2. topic include, 3. topic exclude;
4. command-pattern include, 5. command-pattern exclude;
6. the tool-limit strategy when survivors exceed ``maxTools``;
7. an advisory once survivors pass ``warnThreshold``.

Every input command ends up in exactly one of ``filtered`` or ``excluded``,
the latter tagged with the stage that removed it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from ..command import CommandSpec
from ..config import McpConfig
from ..exceptions import ToolLimitExceededError
from ..utils import get_logger
from ..utils.patterns import matches_patterns, matches_topic, topic_of


_logger = get_logger("climcp.filter")


class ExclusionReason(str, Enum):
    HIDDEN = "hidden"
    DISABLED = "disabled"
    NON_ELIGIBLE_ORIGIN = "non-eligible-origin"
    SELF_REFERENTIAL = "self-referential"
    TOPIC_MISMATCH = "topic-mismatch"
    PATTERN_MISMATCH = "pattern-mismatch"
    OVER_LIMIT = "over-limit"


@dataclass(frozen=True, slots=True)
class Exclusion:
    command: CommandSpec
    reason: ExclusionReason


@dataclass(slots=True)
class FilterResult:
    filtered: list[CommandSpec] = field(default_factory=list)
    excluded: list[Exclusion] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def excluded_commands(self) -> list[CommandSpec]:
        return [item.command for item in self.excluded]

    def reason_for(self, command_id: str) -> ExclusionReason | None:
        for item in self.excluded:
            if item.command.id == command_id:
                return item.reason
        return None


def _eligibility(command: CommandSpec, self_id: str) -> ExclusionReason | None:
    if command.hidden:
        return ExclusionReason.HIDDEN
    if command.disable_mcp:
        return ExclusionReason.DISABLED
    if not command.is_eligible_origin:
        return ExclusionReason.NON_ELIGIBLE_ORIGIN
    if command.id == self_id:
        return ExclusionReason.SELF_REFERENTIAL
    return None


def filter_commands(commands: Sequence[CommandSpec], config: McpConfig) -> FilterResult:
    """Partition ``commands`` according to ``config``.

    ``config`` should be the output of :func:`climcp.config.build_config`.

    Raises:
        ToolLimitExceededError: Under the ``strict`` strategy, when more than
            ``maxTools`` commands survive the include/exclude stages.
    """
    result = FilterResult()
    separator = config.topic_separator

    def _drop(command: CommandSpec, reason: ExclusionReason) -> None:
        result.excluded.append(Exclusion(command, reason))

    survivors: list[CommandSpec] = []
    for command in commands:
        reason = _eligibility(command, config.self_id)
        if reason is None:
            survivors.append(command)
        else:
            _drop(command, reason)

    include_topics = config.topics.include
    if include_topics and "*" not in include_topics:
        survivors = _keep(
            survivors, lambda c: matches_topic(c.id, include_topics, separator), ExclusionReason.TOPIC_MISMATCH, _drop
        )

    exclude_topics = config.topics.exclude
    if exclude_topics:
        survivors = _keep(
            survivors,
            lambda c: not matches_topic(c.id, exclude_topics, separator),
            ExclusionReason.TOPIC_MISMATCH,
            _drop,
        )

    include_patterns = config.commands.include
    if include_patterns:
        survivors = _keep(
            survivors, lambda c: matches_patterns(c.id, include_patterns), ExclusionReason.PATTERN_MISMATCH, _drop
        )

    exclude_patterns = config.commands.exclude
    if exclude_patterns:
        survivors = _keep(
            survivors, lambda c: not matches_patterns(c.id, exclude_patterns), ExclusionReason.PATTERN_MISMATCH, _drop
        )

    max_tools = config.max_tools
    if len(survivors) > max_tools:
        kept = apply_tool_limit(survivors, config)
        kept_ids = {id(command) for command in kept}
        for command in survivors:
            if id(command) not in kept_ids:
                _drop(command, ExclusionReason.OVER_LIMIT)
        message = (
            f"{len(survivors)} commands matched but maxTools is {max_tools}; "
            f"the {config.strategy!r} strategy kept {len(kept)}"
        )
        result.warnings.append(message)
        _logger.warning(message)
        survivors = kept

    if config.warn_threshold < len(survivors) <= max_tools:
        message = (
            f"Exposing {len(survivors)} tools, above the warning threshold of {config.warn_threshold} "
            f"(limit {max_tools}); some clients degrade with large tool lists"
        )
        result.warnings.append(message)
        _logger.warning(message)

    result.filtered = survivors
    return result


def _keep(commands, predicate, reason, drop) -> list[CommandSpec]:
    kept: list[CommandSpec] = []
    for command in commands:
        if predicate(command):
            kept.append(command)
        else:
            drop(command, reason)
    return kept


def apply_tool_limit(commands: Sequence[CommandSpec], config: McpConfig) -> list[CommandSpec]:
    """Select at most ``maxTools`` of ``commands`` with the configured strategy."""
    max_tools = config.max_tools
    strategy = config.strategy

    if strategy == "strict":
        if len(commands) > max_tools:
            raise ToolLimitExceededError(len(commands), max_tools)
        return list(commands)

    if strategy == "balanced":
        return _balanced(commands, max_tools, config.topic_separator)

    priority = config.commands.priority
    if strategy == "prioritize" and priority:
        preferred = [command for command in commands if matches_patterns(command.id, priority)]
        others = [command for command in commands if not matches_patterns(command.id, priority)]
        preferred = preferred[:max_tools]
        return preferred + others[: max_tools - len(preferred)]

    return list(commands[:max_tools])


def _balanced(commands: Sequence[CommandSpec], max_tools: int, separator: str) -> list[CommandSpec]:
    groups: dict[str, list[CommandSpec]] = {}
    for command in commands:
        groups.setdefault(topic_of(command.id, separator), []).append(command)
    if not groups:
        return []

    # Sorted so the remainder slots do not depend on registry order.
    topics = sorted(groups)
    per_topic, remainder = divmod(max_tools, len(topics))
    chosen: set[int] = set()
    for index, topic in enumerate(topics):
        quota = per_topic + (1 if index < remainder else 0)
        chosen.update(id(command) for command in groups[topic][:quota])
    return [command for command in commands if id(command) in chosen]


__all__ = ["Exclusion", "ExclusionReason", "FilterResult", "apply_tool_limit", "filter_commands"]
