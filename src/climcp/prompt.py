# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Prompt declarations contributed by commands."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict

from pydantic import TypeAdapter

from . import types
from .resource import HandlerLike


@dataclass(frozen=True, slots=True)
class PromptArgument:
    name: str
    description: str | None = None
    required: bool = False

    def to_mcp(self) -> types.PromptArgument:
        return types.PromptArgument(name=self.name, description=self.description, required=self.required)


@dataclass(slots=True)
class Prompt:
    """A named message template.

    ``argument_schema`` is anything :class:`pydantic.TypeAdapter` accepts (a
    ``BaseModel`` subclass, a ``TypedDict``...).  Without one, a schema is
    derived from ``arguments``: every argument is a string, optional unless
    marked required.
    """

    name: str
    description: str | None = None
    arguments: tuple[PromptArgument, ...] = ()
    argument_schema: Any | None = None
    handler: HandlerLike | None = None
    _adapter: TypeAdapter[Any] | None = field(default=None, init=False, repr=False, compare=False)

    def to_mcp(self) -> types.Prompt:
        return types.Prompt(
            name=self.name,
            description=self.description,
            arguments=[argument.to_mcp() for argument in self.arguments] or None,
        )

    def validator(self) -> TypeAdapter[Any]:
        if self._adapter is None:
            schema = self.argument_schema if self.argument_schema is not None else self._derived_schema()
            self._adapter = TypeAdapter(schema)
        return self._adapter

    def validate_arguments(self, arguments: Mapping[str, Any] | None) -> Any:
        """Validate ``arguments``; raises :class:`pydantic.ValidationError`."""
        return self.validator().validate_python(dict(arguments or {}))

    def _derived_schema(self) -> Any:
        annotations: dict[str, Any] = {}
        for argument in self.arguments:
            annotations[argument.name] = str if argument.required else NotRequired[str]
        return TypedDict(f"{_camel(self.name)}Arguments", annotations)  # type: ignore[operator]


def _camel(name: str) -> str:
    cleaned = "".join(c if c.isalnum() else " " for c in name).split()
    return "".join(part.title() for part in cleaned) or "Prompt"


def coerce_prompt(value: Prompt | Mapping[str, Any]) -> Prompt:
    """Accept provider output given as a plain mapping."""
    if isinstance(value, Prompt):
        return value
    data = dict(value)
    raw_arguments: Sequence[Any] = data.get("arguments") or ()
    arguments = tuple(
        item
        if isinstance(item, PromptArgument)
        else PromptArgument(name=item["name"], description=item.get("description"), required=bool(item.get("required")))
        for item in raw_arguments
    )
    return Prompt(
        name=data["name"],
        description=data.get("description"),
        arguments=arguments,
        argument_schema=data.get("argumentSchema", data.get("argument_schema")),
        handler=data.get("handler"),
    )


__all__ = ["Prompt", "PromptArgument", "coerce_prompt"]
