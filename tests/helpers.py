# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Shared test helpers: sample commands and notification capture."""

from __future__ import annotations

import argparse
from collections.abc import Iterable
from typing import Any

import anyio

from climcp import types
from climcp.command import Arg, Command, CommandSpec, Flag, FlagType, ToolAnnotations
from climcp.prompt import Prompt, PromptArgument
from climcp.registry import CommandRegistry
from climcp.resource import Resource, ResourceTemplate, Root
from climcp.server import CommandServer


async def _noop() -> None:
    await anyio.lowlevel.checkpoint()


def spec(command_id: str, **kwargs: Any) -> CommandSpec:
    """Bare descriptor for filter tests."""
    return CommandSpec(id=command_id, **kwargs)


def specs(*command_ids: str) -> list[CommandSpec]:
    return [spec(command_id) for command_id in command_ids]


class Greet(Command):
    id = "greet"
    summary = "Say hello"
    args = (Arg("name", required=True, description="Who to greet"),)
    flags = {
        "shout": Flag(FlagType.BOOLEAN, char="s"),
        "lang": Flag(FlagType.OPTION, options=("en", "fr")),
    }
    annotations = ToolAnnotations(read_only=True, title="Greeter")

    def run(self) -> None:
        parsed = self.parse()
        greeting = "bonjour" if parsed.get("lang") == "fr" else "hello"
        text = f"{greeting} {parsed['name']}"
        self.log(text.upper() if parsed.get("shout") else text)


class Quiet(Command):
    id = "quiet"

    def run(self) -> None:
        return None


class Noisy(Command):
    id = "noisy"

    def run(self) -> None:
        self.log("partial")
        self.warn("careful")


class Broken(Command):
    id = "broken"
    summary = "Always fails"

    def run(self) -> None:
        self.log("before failure")
        raise RuntimeError("boom")


class Slow(Command):
    id = "slow"

    async def run(self) -> None:
        await anyio.sleep(5)


class AuthLogin(Command):
    id = "auth:login"
    summary = "Log in"
    args = (Arg("username", required=True),)

    def run(self) -> None:
        self.log(f"logged in as {self.parse()['username']}")


class AuthLogout(Command):
    id = "auth:logout"
    summary = "Log out"

    def run(self) -> None:
        self.log("bye")


class Catalog(Command):
    """Command that contributes resources, templates, roots and prompts."""

    id = "catalog:show"
    summary = "Show the catalog"
    mcp_resources = (
        Resource(uri="config://app", name="App config", mime_type="application/json", content='{"debug": true}'),
        Resource(uri="status://live", name="Live status", handler="read_status"),
        Resource(uri="docs://readme", name="Readme", description="Project readme"),
        Resource(uri="logo://png", name="Logo", content=b"\x89PNG"),
    )
    mcp_resource_templates = (
        ResourceTemplate(uri_template="items://{id}", name="Item", handler="read_item"),
        ResourceTemplate(uri_template="files://{path}", name="File"),
    )
    mcp_roots = (Root(uri="file:///workspace", name="Workspace"),)
    mcp_prompts = (
        Prompt(
            name="review",
            description="Review a change",
            arguments=(PromptArgument("target", required=True),),
            handler="review_prompt",
        ),
        Prompt(name="summary", description="Summarize the repository"),
    )

    def read_status(self) -> dict[str, Any]:
        return {"state": "green"}

    def read_item(self, params: dict[str, str]) -> str:
        return f"item {params['id']}"

    async def review_prompt(self, arguments: dict[str, str]) -> list[tuple[str, str]]:
        await _noop()
        return [("user", f"Please review {arguments['target']}")]

    def run(self) -> None:
        self.log("catalog")


class DynamicCatalog(Command):
    id = "dynamic:list"

    async def get_mcp_resources(self) -> list[dict[str, Any]]:
        await _noop()
        return [{"uri": "dyn://one", "name": "One", "content": "first"}]

    def get_mcp_prompts(self) -> list[dict[str, Any]]:
        return [{"name": "dyn-prompt", "arguments": [{"name": "topic"}], "handler": lambda args: "dynamic"}]

    def run(self) -> None:
        return None


class BrokenProvider(Command):
    id = "broken:provider"

    def get_mcp_resources(self) -> list[Any]:
        raise RuntimeError("provider failed")

    def run(self) -> None:
        return None


class NotificationRecorder:
    """Collects every notification delivered through a ``BroadcastSink``."""

    def __init__(self) -> None:
        self.notifications: list[types.ServerNotification] = []

    async def __call__(self, notification: types.ServerNotification) -> None:
        await anyio.lowlevel.checkpoint()
        self.notifications.append(notification)

    @property
    def methods(self) -> list[str]:
        return [notification.root.method for notification in self.notifications]


async def immediate_sleep(delay: float) -> None:
    await anyio.lowlevel.checkpoint()


def make_server(commands: Iterable[Any] = (), **kwargs: Any) -> CommandServer:
    kwargs.setdefault("version", "1.0.0")
    return CommandServer(list(commands), **kwargs)


async def ready_server(commands: Iterable[Any] = (), **kwargs: Any) -> CommandServer:
    server = make_server(commands, **kwargs)
    await server.prepare()
    return server


def initialize_params(version: str = "2025-06-18") -> dict[str, Any]:
    return {
        "protocolVersion": version,
        "capabilities": {},
        "clientInfo": {"name": "pytest", "version": "0.0.1"},
    }


def rpc(method: str, params: dict[str, Any] | None = None, request_id: int | str = 1) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def build_cli() -> argparse.ArgumentParser:
    """A small argparse program with nested, aliased and hidden sub-commands."""
    parser = argparse.ArgumentParser(prog="acme", description="Acme deployment tool")
    sub = parser.add_subparsers(dest="command")

    deploy = sub.add_parser("deploy", aliases=["d"], help="Deploy the app", description="Ship a build")
    deploy.add_argument("env", choices=["staging", "prod"], help="Target environment")
    deploy.add_argument("--force", "-f", action="store_true", help="Skip checks")
    deploy.add_argument("--region", choices=["eu", "us"])
    deploy.add_argument("--tag")
    deploy.set_defaults(func=lambda args: f"deployed {args.env} force={args.force} region={args.region}")

    status = sub.add_parser("status", help="Show status")
    status.set_defaults(func=_print_status)

    remote = sub.add_parser("remote", help="Manage remotes")
    remote_sub = remote.add_subparsers(dest="remote_command")
    add = remote_sub.add_parser("add", help="Add a remote")
    add.add_argument("name")
    add.add_argument("url", nargs="?")
    add.set_defaults(func=_add_remote)

    sub.add_parser("secret", help=argparse.SUPPRESS)
    return parser


def _print_status(args: argparse.Namespace) -> None:
    print("all systems go")


async def _add_remote(args: argparse.Namespace, sink: Any) -> None:
    await anyio.lowlevel.checkpoint()
    sink.write(f"added {args.name} -> {args.url or 'origin'}\n")


registry = CommandRegistry([Greet, Quiet])

not_commands = {"greet": "hello"}
