# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Serve CLI commands as an MCP tool, resource, and prompt server."""

from __future__ import annotations

from . import types
from .argparse_host import commands_from_parser, install_mcp_command
from .command import Arg, Command, CommandSpec, Flag, FlagType, OutputSink, ToolAnnotations
from .config import ConfigOverrides, McpConfig, build_config, load_config
from .exceptions import ClimcpError, CommandError, ConfigurationError, ToolLimitExceededError
from .prompt import Prompt, PromptArgument
from .registry import CommandRegistry
from .resource import Resource, ResourceTemplate, Root
from .server import AuthorizationConfig, CommandServer


__all__ = [
    "Arg",
    "AuthorizationConfig",
    "ClimcpError",
    "Command",
    "CommandError",
    "CommandRegistry",
    "CommandServer",
    "CommandSpec",
    "ConfigOverrides",
    "ConfigurationError",
    "Flag",
    "FlagType",
    "McpConfig",
    "OutputSink",
    "Prompt",
    "PromptArgument",
    "Resource",
    "ResourceTemplate",
    "Root",
    "ToolAnnotations",
    "ToolLimitExceededError",
    "build_config",
    "commands_from_parser",
    "install_mcp_command",
    "load_config",
    "types",
]
