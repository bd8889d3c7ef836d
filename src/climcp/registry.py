# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Command registry.

The registry is the host-side list of commands a :class:`CommandServer`
enumerates once at startup.  Commands are added directly, through the
:meth:`CommandRegistry.command` decorator, or discovered from installed
distributions that advertise them under the ``climcp.commands`` entry-point
group::

    [project.entry-points."climcp.commands"]
    deploy = "acme_cli.commands:Deploy"

An entry point may name a :class:`~climcp.command.Command` subclass, a
:class:`~climcp.command.CommandSpec`, another registry, or an iterable of
those.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from importlib.metadata import entry_points
from typing import Any, TypeVar

from .command import Command, CommandSpec
from .exceptions import ConfigurationError
from .utils import get_logger


ENTRY_POINT_GROUP = "climcp.commands"

CommandLike = CommandSpec | type[Command]
_C = TypeVar("_C", bound=type[Command])

_logger = get_logger("climcp.registry")


def as_spec(item: CommandLike) -> CommandSpec:
    if isinstance(item, CommandSpec):
        return item
    if isinstance(item, type) and issubclass(item, Command):
        return CommandSpec.from_command(item)
    raise TypeError(f"Expected a Command subclass or CommandSpec, got {item!r}")


class CommandRegistry:
    def __init__(self, commands: Iterable[CommandLike] = ()) -> None:
        self._commands: dict[str, CommandSpec] = {}
        self.extend(commands)

    def add(self, item: CommandLike) -> CommandSpec:
        """Register one command.

        Raises:
            ConfigurationError: When another command already uses the same id.
        """
        spec = as_spec(item)
        if spec.id in self._commands:
            raise ConfigurationError(f"Command {spec.id!r} is already registered")
        self._commands[spec.id] = spec
        return spec

    def extend(self, items: Iterable[CommandLike]) -> None:
        for item in items:
            self.add(item)

    def command(self, command_class: _C) -> _C:
        """Class decorator form of :meth:`add`."""
        self.add(command_class)
        return command_class

    def get(self, command_id: str) -> CommandSpec | None:
        return self._commands.get(command_id)

    @property
    def ids(self) -> list[str]:
        return list(self._commands)

    def specs(self) -> list[CommandSpec]:
        return list(self._commands.values())

    def __iter__(self) -> Iterator[CommandSpec]:
        return iter(list(self._commands.values()))

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def load_entry_points(self, group: str = ENTRY_POINT_GROUP) -> int:
        """Add every command advertised under ``group``; returns how many.

        A broken entry point is logged and skipped so one faulty plugin
        cannot take the whole server down.
        """
        added = 0
        for entry_point in entry_points(group=group):
            try:
                loaded = entry_point.load()
                items = list(_flatten(loaded))
            except Exception:
                _logger.warning("Failed to load command entry point %s", entry_point.name, exc_info=True)
                continue
            for item in items:
                try:
                    self.add(item)
                except (ConfigurationError, TypeError, ValueError) as exc:
                    _logger.warning("Skipping command from entry point %s: %s", entry_point.name, exc)
                    continue
                added += 1
        return added

    @classmethod
    def from_entry_points(cls, group: str = ENTRY_POINT_GROUP) -> CommandRegistry:
        registry = cls()
        registry.load_entry_points(group)
        return registry


def _flatten(value: Any) -> Iterator[CommandLike]:
    if isinstance(value, CommandRegistry):
        yield from value
    elif isinstance(value, CommandSpec) or (isinstance(value, type) and issubclass(value, Command)):
        yield value
    elif isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
        for item in value:
            yield from _flatten(item)
    else:
        raise TypeError(f"Entry point did not provide commands: {value!r}")


__all__ = ["ENTRY_POINT_GROUP", "CommandLike", "CommandRegistry", "as_spec"]
