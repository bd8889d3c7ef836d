# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Command-id pattern and topic matching."""

from __future__ import annotations

import pytest

from climcp.utils.patterns import matches_pattern, matches_patterns, matches_topic, topic_of


@pytest.mark.parametrize("command_id", ["auth:login", "x", "", "a:b:c"])
def test_star_matches_everything(command_id: str) -> None:
    assert matches_pattern(command_id, "*")


def test_exact_and_prefix_patterns() -> None:
    assert matches_pattern("a:b", "a:b")
    assert matches_pattern("a:b", "a:*")
    assert not matches_pattern("a:b", "c:*")
    assert not matches_pattern("a:bc", "a:b")


def test_patterns_are_anchored() -> None:
    assert not matches_pattern("xa:b", "a:*")
    assert matches_pattern("deploy:app:prod", "*:prod")
    assert not matches_pattern("deploy:prod:app", "*:prod")


def test_regex_metacharacters_are_literal() -> None:
    assert matches_pattern("a.b", "a.b")
    assert not matches_pattern("axb", "a.b")
    assert matches_pattern("plugins[1]:run", "plugins[1]:*")


def test_matches_any_pattern() -> None:
    assert matches_patterns("auth:login", ["config:*", "auth:*"])
    assert not matches_patterns("auth:login", [])


def test_topic_helpers() -> None:
    assert topic_of("auth:login") == "auth"
    assert topic_of("standalone") == "standalone"
    assert topic_of("auth.login", ".") == "auth"
    assert matches_topic("auth:login", ["auth"])
    assert matches_topic("auth:login", ["*"])
    assert not matches_topic("auth:login", ["config"])
