# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Command filtering and tool-limit strategies."""

from __future__ import annotations

import io
import itertools

import pytest

from climcp.config import ConfigOverrides, build_config
from climcp.exceptions import ToolLimitExceededError
from climcp.server.filtering import ExclusionReason, apply_tool_limit, filter_commands
from climcp.server.reporting import render_filter_report, write_filter_report
from tests.helpers import spec, specs


def _ids(commands) -> list[str]:
    return [command.id for command in commands]


def test_server_command_is_excluded_by_default() -> None:
    result = filter_commands(specs("auth:login", "auth:logout", "mcp"), build_config())
    assert _ids(result.filtered) == ["auth:login", "auth:logout"]
    assert _ids(result.excluded_commands) == ["mcp"]
    assert result.reason_for("mcp") is ExclusionReason.SELF_REFERENTIAL


def test_eligibility_reasons() -> None:
    commands = [
        spec("secret", hidden=True),
        spec("off", disable_mcp=True),
        spec("jit:thing", plugin_type="jit"),
        spec("user:thing", plugin_type="user"),
    ]
    result = filter_commands(commands, build_config())
    assert _ids(result.filtered) == ["user:thing"]
    assert result.reason_for("secret") is ExclusionReason.HIDDEN
    assert result.reason_for("off") is ExclusionReason.DISABLED
    assert result.reason_for("jit:thing") is ExclusionReason.NON_ELIGIBLE_ORIGIN


def test_custom_self_id() -> None:
    result = filter_commands(specs("serve", "mcp"), build_config({"selfId": "serve"}))
    assert _ids(result.filtered) == ["mcp"]


def test_balanced_strategy_keeps_even_share_per_topic() -> None:
    commands = specs(*(f"alpha:{n}" for n in range(5)), *(f"beta:{n}" for n in range(5)))
    config = build_config(overrides=ConfigOverrides(max_tools=4, strategy="balanced"))
    result = filter_commands(commands, config)
    assert _ids(result.filtered) == ["alpha:0", "alpha:1", "beta:0", "beta:1"]
    assert len(result.excluded) == 6
    assert {item.reason for item in result.excluded} == {ExclusionReason.OVER_LIMIT}
    assert result.warnings


def test_balanced_remainder_goes_to_first_topics_in_order() -> None:
    commands = specs("c:1", "c:2", "a:1", "a:2", "b:1", "b:2")
    config = build_config(overrides=ConfigOverrides(max_tools=4, strategy="balanced"))
    kept = apply_tool_limit(commands, config)
    # "a" sorts first and takes the spare slot; output keeps input order
    assert _ids(kept) == ["c:1", "a:1", "a:2", "b:1"]


def test_first_strategy_truncates() -> None:
    config = build_config(overrides=ConfigOverrides(max_tools=2, strategy="first"))
    assert _ids(apply_tool_limit(specs("a", "b", "c"), config)) == ["a", "b"]


def test_prioritize_strategy_puts_priority_first() -> None:
    config = build_config(
        {"commands": {"priority": ["deploy:*"]}}, ConfigOverrides(max_tools=3, strategy="prioritize")
    )
    kept = apply_tool_limit(specs("a", "b", "deploy:app", "c", "deploy:db"), config)
    assert _ids(kept) == ["deploy:app", "deploy:db", "a"]


def test_prioritize_without_priority_list_behaves_like_first() -> None:
    config = build_config(overrides=ConfigOverrides(max_tools=2))
    assert config.strategy == "prioritize"
    assert _ids(apply_tool_limit(specs("a", "b", "c"), config)) == ["a", "b"]


def test_prioritize_overflowing_priority_commands_are_dropped() -> None:
    config = build_config({"commands": {"priority": ["*"]}}, ConfigOverrides(max_tools=1))
    result = filter_commands(specs("a", "b"), config)
    assert _ids(result.filtered) == ["a"]
    assert result.reason_for("b") is ExclusionReason.OVER_LIMIT


def test_strict_strategy_raises_when_over_limit() -> None:
    config = build_config(overrides=ConfigOverrides(max_tools=1, strategy="strict"))
    with pytest.raises(ToolLimitExceededError) as excinfo:
        filter_commands(specs("a", "b"), config)
    assert excinfo.value.count == 2
    assert excinfo.value.max_tools == 1


def test_strict_strategy_passes_within_limit() -> None:
    config = build_config(overrides=ConfigOverrides(max_tools=2, strategy="strict"))
    assert _ids(filter_commands(specs("a", "b", "mcp"), config).filtered) == ["a", "b"]


def test_zero_max_tools_exposes_nothing() -> None:
    config = build_config(overrides=ConfigOverrides(max_tools=0, strategy="balanced"))
    result = filter_commands(specs("a:1", "b:1"), config)
    assert result.filtered == []
    assert len(result.excluded) == 2


def test_topic_filters() -> None:
    commands = specs("auth:login", "config:get", "deploy:app", "deploy:db")
    config = build_config({"topics": {"include": ["auth", "deploy"], "exclude": ["deploy"]}})
    result = filter_commands(commands, config)
    assert _ids(result.filtered) == ["auth:login"]
    assert {result.reason_for(i) for i in ("config:get", "deploy:app")} == {ExclusionReason.TOPIC_MISMATCH}


def test_wildcard_or_empty_topic_include_keeps_everything() -> None:
    commands = specs("auth:login", "config:get")
    assert len(filter_commands(commands, build_config({"topics": {"include": ["*"]}})).filtered) == 2
    assert len(filter_commands(commands, build_config({"topics": {"include": []}})).filtered) == 2


def test_command_patterns() -> None:
    commands = specs("auth:login", "auth:token:rotate", "config:get")
    config = build_config({"commands": {"include": ["auth:*"], "exclude": ["*:rotate"]}})
    result = filter_commands(commands, config)
    assert _ids(result.filtered) == ["auth:login"]
    assert result.reason_for("config:get") is ExclusionReason.PATTERN_MISMATCH
    assert result.reason_for("auth:token:rotate") is ExclusionReason.PATTERN_MISMATCH


def test_warning_threshold() -> None:
    config = build_config({"toolLimits": {"maxTools": 10, "warnThreshold": 2}})
    result = filter_commands(specs("a", "b", "c"), config)
    assert len(result.filtered) == 3
    assert len(result.warnings) == 1
    assert "warning threshold" in result.warnings[0]


@pytest.mark.parametrize(
    ("max_tools", "strategy"),
    list(itertools.product([0, 1, 3, 7, 50], ["first", "prioritize", "balanced"])),
)
def test_filter_bound_and_partition(max_tools: int, strategy: str) -> None:
    commands = [
        *specs(*(f"t{n % 4}:cmd{n}" for n in range(20))),
        spec("hidden:x", hidden=True),
        spec("mcp"),
    ]
    config = build_config(
        {"commands": {"priority": ["t1:*"], "exclude": ["t3:cmd3"]}},
        ConfigOverrides(max_tools=max_tools, strategy=strategy),
    )
    result = filter_commands(commands, config)
    assert len(result.filtered) <= max_tools

    filtered_ids = {id(command) for command in result.filtered}
    excluded_ids = {id(command) for command in result.excluded_commands}
    assert not filtered_ids & excluded_ids
    assert filtered_ids | excluded_ids == {id(command) for command in commands}


def test_render_report() -> None:
    config = build_config(overrides=ConfigOverrides(max_tools=1))
    result = filter_commands(specs("a", "b", "mcp"), config)
    report = render_filter_report(result, config)
    assert "Command Filtering Report" in report
    assert "  - Total commands: 3" in report
    assert "  - Included: 1" in report
    assert "  - b (over-limit)" in report
    assert "  - mcp (self-referential)" in report
    assert "Warnings:" in report


def test_report_truncates_long_lists() -> None:
    config = build_config()
    result = filter_commands(specs(*(f"c{n}" for n in range(25))), config)
    report = render_filter_report(result, config)
    assert "  ... and 5 more" in report


def test_write_report_to_stream() -> None:
    config = build_config()
    stream = io.StringIO()
    write_filter_report(filter_commands(specs("a"), config), config, stream)
    assert "Included Commands (1):" in stream.getvalue()
