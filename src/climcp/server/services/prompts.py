# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Prompt catalog collected from filtered commands."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import anyio
from pydantic import BaseModel, ValidationError

from ._owner import CommandOwner
from ..adapters import default_prompt_result, normalize_prompt_result
from ..pagination import paginate_sequence
from ... import types
from ...command import CommandSpec, PromptProvider
from ...exceptions import invalid_params, prompt_not_found, protocol_error
from ...prompt import Prompt, coerce_prompt
from ...resource import HandlerResolutionError, Reader, resolve_reader
from ...utils.schema import format_validation_error


@dataclass(slots=True)
class PromptEntry:
    prompt: Prompt
    command_id: str
    definition: types.Prompt
    reader: Reader | None = None


class PromptsService:
    def __init__(self, *, logger, pagination_limit: int) -> None:
        self._logger = logger
        self._pagination_limit = pagination_limit
        self._prompts: dict[str, PromptEntry] = {}

    @property
    def prompt_names(self) -> list[str]:
        return list(self._prompts)

    async def collect(self, commands: Iterable[CommandSpec]) -> None:
        async with anyio.create_task_group() as tg:
            for command in commands:
                tg.start_soon(self._collect_from, command)

    async def _collect_from(self, command: CommandSpec) -> None:
        owner = CommandOwner(command, self._logger)
        for item in command.prompts:
            self.add_prompt(item, command.id, owner)
        for item in await owner.provide(PromptProvider, "get_mcp_prompts"):
            self.add_prompt(item, command.id, owner)

    def add_prompt(self, item: Prompt | Mapping[str, Any], command_id: str, owner: CommandOwner | None) -> bool:
        try:
            prompt = coerce_prompt(item)
            definition = prompt.to_mcp()
            reader = None
            if prompt.handler is not None:
                reader = resolve_reader(prompt.handler, owner.get() if owner else None)
        except (KeyError, TypeError, ValueError, HandlerResolutionError) as exc:
            self._logger.warning("Skipping prompt from %s: %s", command_id, exc)
            return False

        if prompt.name in self._prompts:
            self._logger.warning(
                "Prompt %s from %s already registered by %s",
                prompt.name,
                command_id,
                self._prompts[prompt.name].command_id,
            )
            return False
        self._prompts[prompt.name] = PromptEntry(prompt, command_id, definition, reader)
        return True

    async def list_prompts(self, cursor: str | None = None) -> types.ListPromptsResult:
        definitions = [entry.definition for entry in self._prompts.values()]
        page, next_cursor = paginate_sequence(definitions, cursor, limit=self._pagination_limit)
        return types.ListPromptsResult(prompts=page, nextCursor=next_cursor)

    async def get_prompt(self, name: str, arguments: Mapping[str, Any] | None) -> types.GetPromptResult:
        entry = self._prompts.get(name)
        if entry is None:
            raise prompt_not_found(name)

        prompt = entry.prompt
        try:
            validated = prompt.validate_arguments(arguments)
        except ValidationError as exc:
            raise invalid_params(
                f"Invalid arguments for prompt {name}", {"errors": format_validation_error(exc)}
            ) from exc

        if entry.reader is None:
            return default_prompt_result(prompt.name, prompt.description)

        params = validated.model_dump() if isinstance(validated, BaseModel) else dict(validated)
        try:
            value = await entry.reader(params)
        except Exception as exc:
            self._logger.warning("Prompt %s failed: %s", name, exc)
            raise protocol_error(types.INTERNAL_ERROR, f"Failed to generate prompt {name}: {exc}") from exc

        try:
            return normalize_prompt_result(prompt.description, value)
        except (TypeError, ValidationError) as exc:
            raise protocol_error(types.INTERNAL_ERROR, f"Prompt {name} returned an invalid result: {exc}") from exc


__all__ = ["PromptEntry", "PromptsService"]
