# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""URI template matching and resolution."""

from __future__ import annotations

import pytest

from climcp.utils.uri import is_template, match_uri_template, resolve_uri_template, template_params


def test_single_parameter_match() -> None:
    assert match_uri_template("items://42", "items://{id}") == {"id": "42"}


def test_last_parameter_captures_remaining_segments() -> None:
    assert match_uri_template("files://src/pkg/mod.py", "files://{path}") == {"path": "src/pkg/mod.py"}


def test_multiple_parameters() -> None:
    template = "repo://{owner}/{name}/issues/{number}"
    assert match_uri_template("repo://acme/cli/issues/7", template) == {
        "owner": "acme",
        "name": "cli",
        "number": "7",
    }


@pytest.mark.parametrize(
    "uri",
    ["other://42", "repo://acme", "repo://acme/cli/pulls/7", "repo://acme/cli/issues"],
)
def test_mismatches_return_none(uri: str) -> None:
    assert match_uri_template(uri, "repo://{owner}/{name}/issues/{number}") is None


def test_literal_template_requires_equal_length() -> None:
    assert match_uri_template("config://app", "config://app") == {}
    assert match_uri_template("config://app/extra", "config://app") is None


def test_resolve_then_match_recovers_params() -> None:
    template = "repo://{owner}/{name}/issues/{number}"
    params = {"owner": "acme corp", "name": "cli", "number": "12"}
    uri = resolve_uri_template(template, params)
    assert uri == "repo://acme%20corp/cli/issues/12"
    assert match_uri_template(uri, template) == params


def test_resolve_keeps_missing_placeholders() -> None:
    assert resolve_uri_template("items://{id}/{rev}", {"id": 3}) == "items://3/{rev}"


def test_template_introspection() -> None:
    assert is_template("items://{id}")
    assert not is_template("items://42")
    assert template_params("repo://{owner}/{name}") == ["owner", "name"]
