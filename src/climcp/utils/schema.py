# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Translate command descriptors into tool input schemas and back into argv.

The pipeline has three steps:

1. :func:`build_input_schema` maps every positional argument and flag to a
   small closed set of :data:`TypeSpec` values.
2. :class:`InputModel` turns those into a ``TypedDict`` that Pydantic can
   validate (strictly; no ``"1"`` to ``True`` coercion) and render as JSON
   Schema for ``tools/list``.
3. :func:`build_argv` serializes validated input into the token list the
   command itself parses; :func:`parse_argv` is the matching parser.

MCP requires tool input schemas to be JSON objects.  :func:`ensure_object_schema`
and :func:`compress_schema` keep the rendered schema flat and object-shaped even
when Pydantic emits ``$ref`` indirection or cosmetic titles.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, NotRequired, TypedDict

from pydantic import TypeAdapter, ValidationError

from ..exceptions import CommandError


if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..command import CommandSpec


JsonSchema = dict[str, Any]


class SchemaError(RuntimeError):
    """Raised when a schema cannot be generated or normalised."""


# ---------------------------------------------------------------------------
# Type specs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BooleanType:
    pass


@dataclass(frozen=True, slots=True)
class StringType:
    pass


@dataclass(frozen=True, slots=True)
class EnumType:
    values: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class OptionalOf:
    inner: BooleanType | StringType | EnumType


TypeSpec = BooleanType | StringType | EnumType | OptionalOf


def _wrap(spec: BooleanType | StringType | EnumType, required: bool) -> TypeSpec:
    return spec if required else OptionalOf(spec)


def build_input_schema(command: CommandSpec) -> dict[str, TypeSpec]:
    """Return the input field map for ``command``.

    Positional arguments come first, then flags, so property order in the
    published schema follows the command's usage line.
    """
    fields: dict[str, TypeSpec] = {}
    for arg in command.args:
        base: BooleanType | StringType | EnumType = EnumType(tuple(arg.options)) if arg.options else StringType()
        fields[arg.name] = _wrap(base, arg.required)

    for name, flag in command.flags.items():
        if flag.is_boolean:
            base = BooleanType()
        elif flag.options:
            base = EnumType(tuple(flag.options))
        else:
            base = StringType()
        fields[name] = _wrap(base, flag.required)
    return fields


def to_annotation(spec: TypeSpec) -> Any:
    """Map a :data:`TypeSpec` onto a Python annotation Pydantic understands."""
    if isinstance(spec, OptionalOf):
        return NotRequired[to_annotation(spec.inner)]  # type: ignore[valid-type]
    if isinstance(spec, BooleanType):
        return bool
    if isinstance(spec, EnumType):
        return Literal[spec.values]  # type: ignore[valid-type]
    return str


class InputModel:
    """Validator and JSON Schema for one command's tool input."""

    def __init__(self, command: CommandSpec) -> None:
        self.command = command
        self.fields = build_input_schema(command)
        annotations = {name: to_annotation(spec) for name, spec in self.fields.items()}
        typed_dict = TypedDict(_typed_dict_name(command.id), annotations)  # type: ignore[operator]
        self._adapter: TypeAdapter[Any] = TypeAdapter(typed_dict)

    def validate(self, arguments: Mapping[str, Any] | None) -> dict[str, Any]:
        """Validate ``arguments`` without coercion.

        Unknown keys are dropped.

        Raises:
            pydantic.ValidationError: When a value has the wrong type, is not
                one of the allowed options, or a required entry is missing.
        """
        return dict(self._adapter.validate_python(dict(arguments or {}), strict=True))

    def json_schema(self) -> JsonSchema:
        try:
            schema = self._adapter.json_schema()
        except Exception as exc:  # pragma: no cover - surface the original failure
            raise SchemaError(f"Unable to derive JSON schema for command {self.command.id!r}") from exc

        schema = compress_schema(_inline_top_level_ref(schema))
        schema = ensure_object_schema(schema)
        properties = schema.setdefault("properties", {})
        for arg in self.command.args:
            if arg.description and arg.name in properties:
                properties[arg.name]["description"] = arg.description
        for name, flag in self.command.flags.items():
            if flag.description and name in properties:
                properties[name]["description"] = flag.description
        return schema


def _typed_dict_name(command_id: str) -> str:
    parts = [part for part in "".join(c if c.isalnum() else " " for c in command_id).split() if part]
    return "".join(part.title() for part in parts) + "Input" if parts else "CommandInput"


def format_validation_error(exc: ValidationError) -> list[dict[str, Any]]:
    """Reduce a Pydantic error into JSON-safe ``{"field", "message"}`` items."""
    details: list[dict[str, Any]] = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(part) for part in error.get("loc", ()))
        details.append({"field": location, "message": error.get("msg", "invalid value")})
    return details


# ---------------------------------------------------------------------------
# argv round trip
# ---------------------------------------------------------------------------


def flag_token(name: str, char: str | None) -> str:
    return f"-{char}" if char else f"--{name}"


def build_argv(validated: Mapping[str, Any], command: CommandSpec) -> list[str]:
    """Serialize validated input into argv tokens.

    Flags come first as ``-c``/``--name`` plus the value; boolean flags emit
    only the token and only when true.  Positionals follow a ``--`` marker in
    declaration order, so a value such as ``"-v"`` is never read as a flag.
    ``None`` and absent entries are skipped.

    Raises:
        CommandError: When an optional positional is omitted while a later
            one is given; the later value would otherwise shift into the
            earlier slot.
    """
    argv: list[str] = []
    for name, flag in command.flags.items():
        value = validated.get(name)
        if value is None:
            continue
        token = flag_token(name, flag.char)
        if flag.is_boolean:
            if value is True:
                argv.append(token)
            continue
        argv.extend((token, str(value)))

    positionals: list[str] = []
    skipped: str | None = None
    for arg in command.args:
        value = validated.get(arg.name)
        if value is None:
            skipped = skipped or arg.name
            continue
        if skipped is not None:
            raise CommandError(f"Argument {arg.name} requires {skipped} to be given as well")
        positionals.append(str(value))
    if positionals:
        argv.append("--")
        argv.extend(positionals)
    return argv


def parse_argv(argv: Sequence[str], command: CommandSpec) -> dict[str, Any]:
    """Parse ``argv`` using ``command``'s own argument rules.

    Only entries present in ``argv`` appear in the result.  ``--name=value``
    is accepted for valued flags; ``--`` ends flag parsing.

    Raises:
        CommandError: On unknown ``--`` flags, missing flag values, surplus
            positionals, values outside an option list, or missing required
            entries.
    """
    lookup: dict[str, str] = {}
    for name, flag in command.flags.items():
        lookup[f"--{name}"] = name
        if flag.char:
            lookup[f"-{flag.char}"] = name

    parsed: dict[str, Any] = {}
    positionals: list[str] = []
    tokens = iter(argv)
    for token in tokens:
        if token == "--":
            positionals.extend(tokens)
            break

        inline_value: str | None = None
        if token.startswith("--") and "=" in token:
            token, inline_value = token.split("=", 1)

        name = lookup.get(token)
        if name is None:
            if token.startswith("--"):
                raise CommandError(f"Nonexistent flag: {token}")
            positionals.append(token if inline_value is None else f"{token}={inline_value}")
            continue

        flag = command.flags[name]
        if flag.is_boolean:
            if inline_value is not None:
                raise CommandError(f"Flag {token} does not take a value")
            parsed[name] = True
            continue

        value = inline_value if inline_value is not None else next(tokens, None)
        if value is None:
            raise CommandError(f"Flag {token} expects a value")
        if flag.options and value not in flag.options:
            raise CommandError(f"Expected {token}={value} to be one of: {', '.join(flag.options)}")
        parsed[name] = value

    if len(positionals) > len(command.args):
        surplus = " ".join(positionals[len(command.args):])
        raise CommandError(f"Unexpected argument: {surplus}")

    for arg, value in zip(command.args, positionals):
        if arg.options and value not in arg.options:
            raise CommandError(f"Expected {value} to be one of: {', '.join(arg.options)}")
        parsed[arg.name] = value

    missing = [arg.name for arg in command.args if arg.required and arg.name not in parsed]
    missing += [f"--{name}" for name, flag in command.flags.items() if flag.required and name not in parsed]
    if missing:
        raise CommandError(f"Missing required input: {', '.join(missing)}")
    return parsed


# ---------------------------------------------------------------------------
# JSON Schema normalisation
# ---------------------------------------------------------------------------


def ensure_object_schema(schema: JsonSchema) -> JsonSchema:
    """Return ``schema`` as an object schema, boxing anything else as ``{}``.

    Tool input always travels as a JSON object.  A schema that describes
    some other shape cannot be honoured, so it is replaced by an empty
    object schema rather than published verbatim.
    """
    clone = _clone_schema(schema)
    if _describes_object(clone):
        clone["type"] = "object"
        return clone
    return {"type": "object", "properties": {}}


def compress_schema(schema: JsonSchema, *, drop_titles: bool = True) -> JsonSchema:
    """Return a structurally equivalent schema without cosmetic noise."""
    clone = _clone_schema(schema)
    if drop_titles:
        _strip_field(clone, "title")
    _prune_empty_required(clone)
    return clone


def _inline_top_level_ref(schema: JsonSchema) -> JsonSchema:
    """Resolve a top-level ``{"$ref": "#/$defs/X"}`` into the referenced body."""
    definitions = schema.get("$defs", {})
    ref = schema.get("$ref")
    if isinstance(ref, str) and ref.startswith("#/$defs/"):
        target = definitions.get(ref.rsplit("/", 1)[-1])
        if isinstance(target, Mapping):
            inlined = _clone_schema(dict(target))
            remaining = {key: value for key, value in definitions.items() if key != ref.rsplit("/", 1)[-1]}
            if remaining:
                inlined["$defs"] = remaining
            return inlined
    return schema


def _clone_schema(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {key: _clone_schema(value) for key, value in schema.items()}
    if isinstance(schema, list):
        return [_clone_schema(item) for item in schema]
    return schema


def _describes_object(schema: Mapping[str, Any]) -> bool:
    if schema.get("type") == "object":
        return True
    return any(key in schema for key in ("properties", "patternProperties", "additionalProperties"))


def _strip_field(node: Any, field_name: str) -> None:
    if isinstance(node, MutableMapping):
        node.pop(field_name, None)
        for key, value in node.items():
            # "properties" keys are user field names, not schema keywords
            if key == "properties" and isinstance(value, MutableMapping):
                for child in value.values():
                    _strip_field(child, field_name)
            else:
                _strip_field(value, field_name)
    elif isinstance(node, list):
        for value in node:
            _strip_field(value, field_name)


def _prune_empty_required(node: Any) -> None:
    if isinstance(node, MutableMapping):
        required = node.get("required")
        if isinstance(required, list) and not required:
            node.pop("required")
        for value in node.values():
            _prune_empty_required(value)
    elif isinstance(node, list):
        for value in node:
            _prune_empty_required(value)


__all__ = [
    "BooleanType",
    "EnumType",
    "InputModel",
    "JsonSchema",
    "OptionalOf",
    "SchemaError",
    "StringType",
    "TypeSpec",
    "build_argv",
    "build_input_schema",
    "compress_schema",
    "ensure_object_schema",
    "flag_token",
    "format_validation_error",
    "parse_argv",
    "to_annotation",
]
