# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Expose an :mod:`argparse` CLI as command descriptors.

Every leaf sub-parser becomes one :class:`~climcp.command.CommandSpec` whose
id joins the sub-command path with ``":"`` (``tool remote add`` becomes
``"remote:add"``).  Positionals map to :class:`~climcp.command.Arg`, options
to :class:`~climcp.command.Flag`; ``store_true``/``store_false`` options are
boolean flags and ``choices`` become option lists.

Leaves are executed by re-parsing ``[*path, *argv]`` with the root parser and
calling the handler stored with ``set_defaults(func=...)``.  A handler takes
the parsed namespace and, optionally, the :class:`~climcp.command.OutputSink`;
a returned string is written to the sink.  Async handlers should write to the
sink.  Synchronous handlers run in a worker thread, and their ``print``
output is captured by swapping ``sys.stdout``, one handler at a time::

    parser = argparse.ArgumentParser(prog="acme")
    sub = parser.add_subparsers()
    deploy = sub.add_parser("deploy", help="Deploy the app")
    deploy.add_argument("env", choices=["staging", "prod"])
    deploy.set_defaults(func=lambda args: f"deployed to {args.env}")
    install_mcp_command(parser)
"""

from __future__ import annotations

import argparse
from collections.abc import Callable, Iterator, Sequence
import contextlib
import io
import inspect
import threading
from typing import Any

from .command import Arg, CommandSpec, Flag, FlagType, OutputSink
from .exceptions import CommandError
from .utils.coro import call_in_worker


DEFAULT_HANDLER_ATTRIBUTE = "func"
DEFAULT_SEPARATOR = ":"

_IGNORED_ACTIONS = (argparse._HelpAction, argparse._VersionAction, argparse._SubParsersAction)
_CAPTURE_LOCK = threading.Lock()


def _subparsers(parser: argparse.ArgumentParser) -> argparse._SubParsersAction | None:
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return action
    return None


def _walk(
    parser: argparse.ArgumentParser, path: tuple[str, ...], help_text: str | None
) -> Iterator[tuple[tuple[str, ...], argparse.ArgumentParser, str | None]]:
    subparsers = _subparsers(parser)
    if subparsers is None:
        if path:
            yield path, parser, help_text
        return
    helps = {choice.dest: choice.help for choice in subparsers._choices_actions}
    seen: set[int] = set()
    for name, child in subparsers.choices.items():
        # aliases map to the same parser object
        if id(child) in seen:
            continue
        seen.add(id(child))
        yield from _walk(child, (*path, name), helps.get(name))


def _flag_name(action: argparse.Action) -> tuple[str, str | None]:
    long_names = [opt for opt in action.option_strings if opt.startswith("--")]
    short_names = [opt for opt in action.option_strings if not opt.startswith("--")]
    char = short_names[0].lstrip("-") if short_names else None
    if char is not None and len(char) != 1:
        char = None
    if long_names:
        return long_names[0][2:], char
    return action.dest, char


def _choices(action: argparse.Action) -> tuple[str, ...] | None:
    if not action.choices:
        return None
    return tuple(str(choice) for choice in action.choices)


def describe_parser(
    parser: argparse.ArgumentParser, help_text: str | None = None
) -> tuple[tuple[Arg, ...], dict[str, Flag], str | None, str | None]:
    """Translate one leaf parser into ``(args, flags, summary, description)``."""
    args: list[Arg] = []
    flags: dict[str, Flag] = {}
    for action in parser._actions:
        if isinstance(action, _IGNORED_ACTIONS) or action.dest == argparse.SUPPRESS:
            continue
        if not action.option_strings:
            args.append(
                Arg(
                    name=action.dest,
                    required=action.nargs not in ("?", "*"),
                    options=_choices(action),
                    description=action.help if action.help != argparse.SUPPRESS else None,
                )
            )
            continue
        name, char = _flag_name(action)
        # store_true, store_false, store_const, count: present or absent
        is_boolean = action.nargs == 0
        options = None if is_boolean else _choices(action)
        flags[name] = Flag(
            type=FlagType.BOOLEAN if is_boolean else (FlagType.OPTION if options else FlagType.STRING),
            char=char,
            required=bool(action.required),
            options=options,
            description=action.help if action.help != argparse.SUPPRESS else None,
        )
    if help_text == argparse.SUPPRESS:
        help_text = None
    summary = help_text or parser.description
    description = parser.description if parser.description != summary else None
    return tuple(args), flags, summary, description


def commands_from_parser(
    parser: argparse.ArgumentParser,
    *,
    separator: str = DEFAULT_SEPARATOR,
    handler_attribute: str = DEFAULT_HANDLER_ATTRIBUTE,
) -> list[CommandSpec]:
    """Return one descriptor per leaf sub-command of ``parser``."""
    commands: list[CommandSpec] = []
    for path, leaf, help_text in _walk(parser, (), None):
        args, flags, summary, description = describe_parser(leaf, help_text)
        commands.append(
            CommandSpec(
                id=separator.join(path),
                summary=summary,
                description=description,
                hidden=help_text == argparse.SUPPRESS,
                args=args,
                flags=flags,
                runner=_make_runner(parser, path, handler_attribute),
            )
        )
    return commands


def _make_runner(
    root: argparse.ArgumentParser, path: tuple[str, ...], handler_attribute: str
) -> Callable[[list[str], OutputSink], Any]:
    async def _run(argv: list[str], sink: OutputSink) -> Any:
        namespace = await call_in_worker(parse_namespace, root, [*path, *argv])
        handler = getattr(namespace, handler_attribute, None)
        if handler is None:
            raise CommandError(f"{' '.join(path)} has no handler")

        wants_sink = len(inspect.signature(handler).parameters) >= 2
        call_args = (namespace, sink) if wants_sink else (namespace,)
        if inspect.iscoroutinefunction(handler):
            result = await handler(*call_args)
        else:
            result = await call_in_worker(_capture_print, handler, call_args, sink)
        if isinstance(result, str):
            sink.write(result if result.endswith("\n") else f"{result}\n")
        return result

    return _run


def _capture_print(handler: Callable[..., Any], call_args: tuple[Any, ...], sink: OutputSink) -> Any:
    # sys.stdout is process-wide; one capture at a time
    with _CAPTURE_LOCK:
        captured = io.StringIO()
        try:
            with contextlib.redirect_stdout(captured):
                return handler(*call_args)
        finally:
            sink.write(captured.getvalue())


def parse_namespace(parser: argparse.ArgumentParser, argv: Sequence[str]) -> argparse.Namespace:
    """``parser.parse_args`` that raises :class:`CommandError` instead of exiting."""
    stderr = io.StringIO()
    stdout = io.StringIO()
    try:
        with _CAPTURE_LOCK, contextlib.redirect_stderr(stderr), contextlib.redirect_stdout(stdout):
            return parser.parse_args(list(argv))
    except SystemExit as exc:
        message = stderr.getvalue().strip() or stdout.getvalue().strip() or f"exit status {exc.code}"
        raise CommandError(message.splitlines()[-1]) from None


def install_mcp_command(
    parser: argparse.ArgumentParser,
    *,
    name: str = "mcp",
    separator: str = DEFAULT_SEPARATOR,
    handler_attribute: str = DEFAULT_HANDLER_ATTRIBUTE,
) -> argparse.ArgumentParser:
    """Add an ``mcp`` sub-command that serves ``parser``'s other commands.

    The new sub-command accepts the same options as the ``climcp`` console
    script.  Its own id equals the default ``selfId`` so it is never exposed
    as a tool.
    """
    from .cli import add_server_arguments, run_server

    subparsers = _subparsers(parser) or parser.add_subparsers(dest="command")
    mcp_parser = subparsers.add_parser(name, help="Serve this CLI's commands over MCP")
    add_server_arguments(mcp_parser)

    def _serve(args: argparse.Namespace) -> int:
        commands = commands_from_parser(parser, separator=separator, handler_attribute=handler_attribute)
        return run_server(args, commands)

    mcp_parser.set_defaults(**{handler_attribute: _serve})
    return mcp_parser


__all__ = [
    "commands_from_parser",
    "describe_parser",
    "install_mcp_command",
    "parse_namespace",
]
