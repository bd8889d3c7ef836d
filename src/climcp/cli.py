# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""``climcp`` console script.

Serves commands from one of two places:

* ``--app module:attribute`` names an :class:`argparse.ArgumentParser`, a
  :class:`~climcp.registry.CommandRegistry`, an iterable of commands, or a
  zero-argument callable returning any of those;
* otherwise every command advertised under the ``climcp.commands`` entry-point
  group is loaded.

Configuration comes from ``--config`` or the first of ``climcp.toml``,
``climcp.json``, ``.climcp.json`` and ``pyproject.toml`` (``[tool.climcp]``)
in the working directory, with the command-line flags applied on top.
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
import functools
import importlib
from typing import Any

import anyio

from .argparse_host import commands_from_parser
from .command import CommandSpec
from .config import STRATEGIES, ConfigOverrides, discover_config, load_config, split_csv
from .exceptions import ClimcpError, ConfigurationError
from .registry import ENTRY_POINT_GROUP, CommandRegistry, as_spec
from .server import CommandServer
from .server.authorization import AuthorizationConfig
from .utils import get_logger, setup_logger


_logger = get_logger("climcp.cli")


def add_server_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    parser.add_argument("--transport", choices=("stdio", "http"), default="stdio", help="Transport to serve on")
    parser.add_argument("--host", default="127.0.0.1", help="HTTP bind address")
    parser.add_argument("--port", type=int, default=3000, help="HTTP port")
    parser.add_argument("--max-tools", type=int, help="Maximum number of tools to expose")
    parser.add_argument("--strategy", choices=STRATEGIES, help="How to pick tools when over the limit")
    parser.add_argument("--include-topics", help="Comma-separated topics to expose")
    parser.add_argument("--exclude-patterns", help="Comma-separated command patterns to hide")
    parser.add_argument("--profile", help="Configuration profile to apply")
    parser.add_argument("--config", help="Path to a JSON or TOML configuration file")
    parser.add_argument("--timeout", type=float, help="Seconds before a tool call is abandoned")
    parser.add_argument("--show-filtered", action="store_true", help="Print the filtering report to stderr")
    parser.add_argument("--require-auth", action="store_true", help="Require a bearer token on HTTP requests")
    parser.add_argument("--log-level", help="Log level (default: CLIMCP_LOG_LEVEL or INFO)")
    return parser


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="climcp", description="Serve CLI commands as an MCP server.")
    parser.add_argument("--app", help="module:attribute naming the commands to serve")
    parser.add_argument(
        "--entry-point-group", default=ENTRY_POINT_GROUP, help="Entry-point group used when --app is not given"
    )
    return add_server_arguments(parser)


def overrides_from_args(args: argparse.Namespace) -> ConfigOverrides:
    return ConfigOverrides(
        max_tools=args.max_tools,
        strategy=args.strategy,
        include_topics=split_csv(args.include_topics),
        exclude_patterns=split_csv(args.exclude_patterns),
        profile=args.profile,
        timeout=args.timeout,
    )


def _as_commands(value: Any) -> list[CommandSpec]:
    if isinstance(value, argparse.ArgumentParser):
        return commands_from_parser(value)
    if isinstance(value, CommandRegistry):
        return value.specs()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [as_spec(item) for item in value]
    return [as_spec(value)]


def resolve_app(target: str) -> list[CommandSpec]:
    """Import ``module:attribute`` and turn it into command descriptors.

    Raises:
        ConfigurationError: The target cannot be imported or holds no commands.
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"--app expects 'module:attribute', got {target!r}")
    try:
        value: Any = importlib.import_module(module_name)
        for part in attribute.split("."):
            value = getattr(value, part)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"Cannot load {target!r}: {exc}") from exc

    try:
        if callable(value) and not isinstance(value, (type, argparse.ArgumentParser, CommandRegistry)):
            value = value()
        return _as_commands(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{target!r} does not provide commands: {exc}") from exc


def load_commands(args: argparse.Namespace) -> list[CommandSpec]:
    if args.app:
        return resolve_app(args.app)
    registry = CommandRegistry.from_entry_points(args.entry_point_group)
    if not registry:
        _logger.warning("No commands found in entry-point group %r", args.entry_point_group)
    return registry.specs()


def run_server(args: argparse.Namespace, commands: Sequence[CommandSpec]) -> int:
    """Build a :class:`CommandServer` from parsed flags and serve until stopped."""
    setup_logger(level=args.log_level, force=True)
    try:
        config = load_config(args.config) if args.config else discover_config()
        server = CommandServer(
            commands,
            config=config,
            overrides=overrides_from_args(args),
            show_filtered=args.show_filtered,
            authorization=AuthorizationConfig(enabled=True) if args.require_auth else None,
        )
        if args.transport == "http":
            anyio.run(functools.partial(server.serve_streamable_http, host=args.host, port=args.port))
        else:
            anyio.run(server.serve_stdio)
    except ClimcpError as exc:
        _logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        _logger.info("Interrupted; shutting down")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(level=args.log_level, force=True)
    try:
        commands = load_commands(args)
    except ConfigurationError as exc:
        _logger.error("%s", exc)
        return 2
    return run_server(args, commands)


__all__ = [
    "add_server_arguments",
    "build_parser",
    "load_commands",
    "main",
    "overrides_from_args",
    "resolve_app",
    "run_server",
]
