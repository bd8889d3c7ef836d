# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

from __future__ import annotations

from typing import Any

import pytest

from climcp.command import Command
from climcp.exceptions import ConfigurationError
from climcp.registry import CommandRegistry, as_spec
from tests.helpers import AuthLogin, AuthLogout, Greet, Quiet, spec


class FakeEntryPoint:
    def __init__(self, name: str, value: Any = None, error: Exception | None = None) -> None:
        self.name = name
        self._value = value
        self._error = error

    def load(self) -> Any:
        if self._error is not None:
            raise self._error
        return self._value


def test_add_and_lookup() -> None:
    registry = CommandRegistry([Greet])
    added = registry.add(spec("deploy"))

    assert registry.ids == ["greet", "deploy"]
    assert registry.get("deploy") is added
    assert registry.get("missing") is None
    assert "greet" in registry
    assert len(registry) == 2
    assert [command.id for command in registry] == ["greet", "deploy"]


def test_duplicate_ids_are_rejected() -> None:
    registry = CommandRegistry([Greet])
    with pytest.raises(ConfigurationError, match="'greet' is already registered"):
        registry.add(spec("greet"))


def test_decorator_registers_and_returns_class() -> None:
    registry = CommandRegistry()

    @registry.command
    class Build(Command):
        id = "build"

        def run(self) -> None:
            return None

    assert Build.id == "build"
    assert registry.get("build").command_class is Build


def test_as_spec_rejects_other_values() -> None:
    with pytest.raises(TypeError):
        as_spec("greet")  # type: ignore[arg-type]
    assert as_spec(Greet).id == "greet"


def test_entry_points_are_loaded_and_failures_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    nested = CommandRegistry([AuthLogin])
    entry_points = [
        FakeEntryPoint("greet", Greet),
        FakeEntryPoint("auth", [nested, [AuthLogout]]),
        FakeEntryPoint("broken", error=ImportError("missing dependency")),
        FakeEntryPoint("junk", "not a command"),
        FakeEntryPoint("again", [Quiet, Greet]),
    ]
    calls: list[str] = []

    def fake_entry_points(*, group: str) -> list[FakeEntryPoint]:
        calls.append(group)
        return entry_points

    monkeypatch.setattr("climcp.registry.entry_points", fake_entry_points)

    registry = CommandRegistry.from_entry_points("acme.commands")

    assert calls == ["acme.commands"]
    assert registry.ids == ["greet", "auth:login", "auth:logout", "quiet"]
