# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Tool capability service: one tool per filtered command.

``tools/call`` never lets a command's exception escape.  Unknown tools and
invalid arguments are protocol errors; anything that happens once the command
runs (including a timeout) becomes an ``isError`` result carrying the message
and whatever output was produced before the failure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import re
from typing import Any

import anyio
from pydantic import ValidationError

from ..adapters import command_failure, command_success
from ..pagination import paginate_sequence
from ... import types
from ...command import CommandSpec, OutputSink
from ...exceptions import CommandError, invalid_params, tool_not_found
from ...utils.schema import InputModel, build_argv, format_validation_error


_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def tool_name_for(command: CommandSpec) -> str:
    """``tool_id`` when declared, else the id with unsafe characters as ``-``."""
    if command.tool_id:
        return command.tool_id
    return _UNSAFE_NAME_CHARS.sub("-", command.id)


def tool_description_for(command: CommandSpec) -> str:
    if command.summary:
        return command.summary
    if command.description:
        first_line = command.description.strip().splitlines()[0] if command.description.strip() else ""
        if first_line:
            return first_line
    return command.id


@dataclass(slots=True)
class _ToolEntry:
    command: CommandSpec
    model: InputModel
    definition: types.Tool


class ToolsService:
    """Holds the tool catalog built from filtered commands."""

    def __init__(self, *, logger, pagination_limit: int, timeout: float | None = None) -> None:
        self._logger = logger
        self._pagination_limit = pagination_limit
        self._timeout = timeout
        self._entries: dict[str, _ToolEntry] = {}

    @property
    def tool_names(self) -> list[str]:
        return list(self._entries)

    @property
    def definitions(self) -> dict[str, types.Tool]:
        return {name: entry.definition for name, entry in self._entries.items()}

    def command_for(self, name: str) -> CommandSpec | None:
        entry = self._entries.get(name)
        return entry.command if entry else None

    def register_commands(self, commands: Iterable[CommandSpec]) -> None:
        for command in commands:
            self.register(command)

    def register(self, command: CommandSpec) -> str | None:
        """Add ``command`` to the catalog; returns the tool name or ``None`` on collision."""
        name = tool_name_for(command)
        existing = self._entries.get(name)
        if existing is not None:
            self._logger.warning(
                "Tool name %r from command %r collides with command %r; keeping the first",
                name,
                command.id,
                existing.command.id,
            )
            return None

        model = InputModel(command)
        annotations = None
        if command.annotations is not None:
            annotations = command.annotations.to_mcp()
        definition = types.Tool(
            name=name,
            description=tool_description_for(command),
            inputSchema=model.json_schema(),
            annotations=annotations,
        )
        self._entries[name] = _ToolEntry(command=command, model=model, definition=definition)
        return name

    def clear(self) -> None:
        self._entries.clear()

    async def list_tools(self, cursor: str | None = None) -> types.ListToolsResult:
        tools = [entry.definition for entry in self._entries.values()]
        page, next_cursor = paginate_sequence(tools, cursor, limit=self._pagination_limit)
        return types.ListToolsResult(tools=page, nextCursor=next_cursor)

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None) -> types.CallToolResult:
        entry = self._entries.get(name)
        if entry is None:
            raise tool_not_found(name)

        try:
            validated = entry.model.validate(arguments)
        except ValidationError as exc:
            raise invalid_params(
                f"Invalid arguments for tool {name}", {"errors": format_validation_error(exc)}
            ) from exc

        try:
            argv = build_argv(validated, entry.command)
        except CommandError as exc:
            raise invalid_params(f"Invalid arguments for tool {name}: {exc}") from exc

        sink = OutputSink()
        self._logger.debug("Running %s with argv %s", entry.command.id, argv)
        try:
            if self._timeout is None:
                await entry.command.execute(argv, sink)
            else:
                with anyio.fail_after(self._timeout):
                    await entry.command.execute(argv, sink)
        except TimeoutError:
            self._logger.warning("Tool %s timed out after %ss", name, self._timeout)
            return command_failure(f"Command timed out after {self._timeout:g} seconds", sink.stdout)
        except SystemExit as exc:
            self._logger.info("Tool %s exited with status %s", name, exc.code)
            return command_failure(f"exit status {exc.code}", sink.stdout)
        except Exception as exc:
            self._logger.info("Tool %s failed: %s", name, exc)
            return command_failure(exc, sink.stdout)

        return command_success(sink.stdout, sink.stderr)


__all__ = ["ToolsService", "tool_description_for", "tool_name_for"]
