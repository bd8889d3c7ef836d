# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Command descriptors and the class-based authoring surface.

A host CLI describes each command once: an identifier such as
``"auth:login"``, ordered positional arguments, named flags, and optional
metadata.  :class:`CommandSpec` is the frozen record the server works from;
:class:`Command` is the convenient way to author one::

    class Login(Command):
        id = "auth:login"
        summary = "Log in to the service"
        args = (Arg("username", required=True),)
        flags = {"force": Flag(FlagType.BOOLEAN, char="f")}

        def run(self) -> None:
            parsed = self.parse()
            self.log(f"hello {parsed['username']}")

Commands never write to the process streams.  Output goes through the
:class:`OutputSink` handed to the instance, which is what lets concurrent tool
calls capture their own output without interfering with each other or with a
stdio protocol stream.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
import io
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from . import types
from .utils.coro import call_in_worker


if TYPE_CHECKING:  # pragma: no cover - typing only
    from .prompt import Prompt
    from .resource import Resource, ResourceTemplate, Root


NON_ELIGIBLE_PLUGIN_TYPES: frozenset[str] = frozenset({"jit"})
"""Plugin origins that are never exposed (just-in-time installed plugins)."""


class FlagType(str, Enum):
    BOOLEAN = "boolean"
    STRING = "string"
    OPTION = "option"


@dataclass(frozen=True, slots=True)
class Arg:
    """Positional argument descriptor."""

    name: str
    required: bool = False
    options: tuple[str, ...] | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Flag:
    """Named flag descriptor.

    ``char`` is the single-letter alias (``-f``).  A flag with ``options`` is
    enumerated regardless of its declared type, unless it is boolean.
    """

    type: FlagType = FlagType.STRING
    char: str | None = None
    required: bool = False
    options: tuple[str, ...] | None = None
    description: str | None = None

    @property
    def is_boolean(self) -> bool:
        return self.type is FlagType.BOOLEAN


@dataclass(frozen=True, slots=True)
class ToolAnnotations:
    """Behavioural hints published alongside the tool definition."""

    destructive: bool | None = None
    idempotent: bool | None = None
    open_world: bool | None = None
    read_only: bool | None = None
    title: str | None = None

    def to_mcp(self) -> types.ToolAnnotations:
        return types.ToolAnnotations(
            title=self.title,
            destructiveHint=self.destructive,
            idempotentHint=self.idempotent,
            openWorldHint=self.open_world,
            readOnlyHint=self.read_only,
        )


class OutputSink:
    """Writable buffers that stand in for a command's stdout and stderr."""

    def __init__(self) -> None:
        self._stdout = io.StringIO()
        self._stderr = io.StringIO()

    def write(self, text: str) -> None:
        self._stdout.write(text)

    def write_error(self, text: str) -> None:
        self._stderr.write(text)

    @property
    def stdout(self) -> str:
        return self._stdout.getvalue()

    @property
    def stderr(self) -> str:
        return self._stderr.getvalue()


# ---------------------------------------------------------------------------
# Capability interfaces
# ---------------------------------------------------------------------------


@runtime_checkable
class ResourceProvider(Protocol):
    def get_mcp_resources(self) -> Any: ...


@runtime_checkable
class ResourceTemplateProvider(Protocol):
    def get_mcp_resource_templates(self) -> Any: ...


@runtime_checkable
class PromptProvider(Protocol):
    def get_mcp_prompts(self) -> Any: ...


@runtime_checkable
class RootProvider(Protocol):
    def get_mcp_roots(self) -> Any: ...


# ---------------------------------------------------------------------------
# Authoring surface
# ---------------------------------------------------------------------------


class Command:
    """Base class for commands authored directly against climcp."""

    id: ClassVar[str] = ""
    summary: ClassVar[str | None] = None
    description: ClassVar[str | None] = None
    hidden: ClassVar[bool] = False
    disable_mcp: ClassVar[bool] = False
    plugin_type: ClassVar[str] = "core"
    tool_id: ClassVar[str | None] = None
    args: ClassVar[tuple[Arg, ...]] = ()
    flags: ClassVar[Mapping[str, Flag]] = {}
    annotations: ClassVar[ToolAnnotations | None] = None

    mcp_resources: ClassVar[Any] = ()
    mcp_resource_templates: ClassVar[Any] = ()
    mcp_prompts: ClassVar[Any] = ()
    mcp_roots: ClassVar[Any] = ()

    def __init__(self, argv: Sequence[str] = (), sink: OutputSink | None = None) -> None:
        self.argv = list(argv)
        self.sink = sink if sink is not None else OutputSink()

    def log(self, message: str = "") -> None:
        self.sink.write(f"{message}\n")

    def warn(self, message: str) -> None:
        self.sink.write_error(f"{message}\n")

    def parse(self) -> dict[str, Any]:
        """Parse ``argv`` with this command's own argument rules.

        Raises:
            CommandError: On unknown flags, missing values, or values outside
                a declared option list.
        """
        from .utils.schema import parse_argv

        return parse_argv(self.argv, CommandSpec.from_command(type(self)))

    def run(self) -> Any:  # pragma: no cover - abstract
        raise NotImplementedError


Runner = Callable[[list[str], OutputSink], Any]


def _as_tuple(value: Any) -> tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


@dataclass(frozen=True, slots=True, eq=False)
class CommandSpec:
    """Immutable description of one host command.

    ``runner`` executes the command for descriptors that do not come from a
    :class:`Command` subclass (for example argparse subcommands).  When both
    are present the runner wins.
    """

    id: str
    summary: str | None = None
    description: str | None = None
    hidden: bool = False
    disable_mcp: bool = False
    plugin_type: str = "core"
    tool_id: str | None = None
    args: tuple[Arg, ...] = ()
    flags: Mapping[str, Flag] = field(default_factory=dict)
    annotations: ToolAnnotations | None = None
    resources: tuple[Resource, ...] = ()
    resource_templates: tuple[ResourceTemplate, ...] = ()
    prompts: tuple[Prompt, ...] = ()
    roots: tuple[Root, ...] = ()
    command_class: type[Command] | None = None
    runner: Runner | None = None

    @classmethod
    def from_command(cls, command_class: type[Command]) -> CommandSpec:
        if not command_class.id:
            raise ValueError(f"{command_class.__name__} does not declare an id")
        return cls(
            id=command_class.id,
            summary=command_class.summary,
            description=command_class.description,
            hidden=command_class.hidden,
            disable_mcp=command_class.disable_mcp,
            plugin_type=command_class.plugin_type,
            tool_id=command_class.tool_id,
            args=tuple(command_class.args),
            flags=dict(command_class.flags),
            annotations=command_class.annotations,
            resources=_as_tuple(command_class.mcp_resources),
            resource_templates=_as_tuple(command_class.mcp_resource_templates),
            prompts=_as_tuple(command_class.mcp_prompts),
            roots=_as_tuple(command_class.mcp_roots),
            command_class=command_class,
        )

    @property
    def is_eligible_origin(self) -> bool:
        return self.plugin_type not in NON_ELIGIBLE_PLUGIN_TYPES

    def instantiate(self, argv: Sequence[str] = (), sink: OutputSink | None = None) -> Command | None:
        """Create a command instance, or ``None`` for class-less descriptors."""
        if self.command_class is None:
            return None
        return self.command_class(argv, sink)

    async def execute(self, argv: Sequence[str], sink: OutputSink) -> Any:
        if self.runner is not None:
            return await call_in_worker(self.runner, list(argv), sink)
        instance = self.instantiate(argv, sink)
        if instance is None:
            raise RuntimeError(f"Command {self.id!r} has nothing to execute")
        return await call_in_worker(instance.run)


__all__ = [
    "Arg",
    "Command",
    "CommandSpec",
    "Flag",
    "FlagType",
    "NON_ELIGIBLE_PLUGIN_TYPES",
    "OutputSink",
    "PromptProvider",
    "ResourceProvider",
    "ResourceTemplateProvider",
    "RootProvider",
    "ToolAnnotations",
]
