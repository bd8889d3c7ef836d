# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Filter and limit configuration.

Configuration arrives from three places, merged in increasing precedence:

1. a config file (``climcp.toml``, ``climcp.json`` or ``[tool.climcp]`` in
   ``pyproject.toml``), validated into :class:`McpConfig`;
2. the selected profile (``--profile`` or ``defaultProfile``);
3. command-line overrides (:class:`ConfigOverrides`).

Built-in defaults fill whatever is still unset.  Keys use the camelCase
spelling of the wire format (``toolLimits.maxTools``); snake_case names are
accepted as well.

Example ``climcp.toml``::

    defaultProfile = "minimal"

    [toolLimits]
    maxTools = 64
    strategy = "balanced"

    [profiles.minimal]
    maxTools = 10
    topics = { include = ["auth", "config"] }
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import math
from pathlib import Path
import tomllib
from typing import Any, Final, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .exceptions import ConfigurationError
from .utils import get_logger


Strategy = Literal["first", "prioritize", "balanced", "strict"]
STRATEGIES: Final[tuple[str, ...]] = ("first", "prioritize", "balanced", "strict")

DEFAULT_MAX_TOOLS: Final[int] = 128
DEFAULT_STRATEGY: Final[Strategy] = "prioritize"
DEFAULT_WARN_RATIO: Final[float] = 0.8
DEFAULT_TOOL_TIMEOUT: Final[float] = 120.0
DEFAULT_SELF_ID: Final[str] = "mcp"
CONFIG_FILENAMES: Final[tuple[str, ...]] = ("climcp.toml", "climcp.json", ".climcp.json", "pyproject.toml")

_logger = get_logger("climcp.config")


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TopicFilter(_ConfigModel):
    include: list[str] | None = None
    exclude: list[str] = Field(default_factory=list)


class CommandFilter(_ConfigModel):
    include: list[str] | None = None
    exclude: list[str] = Field(default_factory=list)
    priority: list[str] = Field(default_factory=list)


class ToolLimits(_ConfigModel):
    max_tools: int | None = Field(default=None, ge=0)
    strategy: Strategy | None = None
    warn_threshold: int | None = Field(default=None, ge=0)


class Profile(_ConfigModel):
    """Named override; ``maxTools`` is shorthand for ``toolLimits.maxTools``."""

    commands: CommandFilter | None = None
    topics: TopicFilter | None = None
    tool_limits: ToolLimits | None = None
    max_tools: int | None = Field(default=None, ge=0)


class McpConfig(_ConfigModel):
    commands: CommandFilter = Field(default_factory=CommandFilter)
    topics: TopicFilter = Field(default_factory=TopicFilter)
    tool_limits: ToolLimits = Field(default_factory=ToolLimits)
    profiles: dict[str, Profile] = Field(default_factory=dict)
    default_profile: str | None = None
    timeout: float | None = Field(default=None, gt=0)
    topic_separator: str = ":"
    self_id: str = DEFAULT_SELF_ID

    # Populated by build_config(); read these after merging.
    @property
    def max_tools(self) -> int:
        value = self.tool_limits.max_tools
        return DEFAULT_MAX_TOOLS if value is None else value

    @property
    def strategy(self) -> Strategy:
        return self.tool_limits.strategy or DEFAULT_STRATEGY

    @property
    def warn_threshold(self) -> int:
        value = self.tool_limits.warn_threshold
        return math.floor(self.max_tools * DEFAULT_WARN_RATIO) if value is None else value

    @property
    def tool_timeout(self) -> float:
        return self.timeout if self.timeout is not None else DEFAULT_TOOL_TIMEOUT


@dataclass(slots=True)
class ConfigOverrides:
    """Values supplied on the command line; ``None`` means "not given"."""

    max_tools: int | None = None
    strategy: Strategy | None = None
    include_topics: list[str] | None = None
    exclude_patterns: list[str] | None = None
    profile: str | None = None
    timeout: float | None = None


def split_csv(value: str | Sequence[str] | None) -> list[str] | None:
    """Split ``"a, b,,c"`` into ``["a", "b", "c"]``; ``None`` stays ``None``."""
    if value is None:
        return None
    items = value.split(",") if isinstance(value, str) else [part for chunk in value for part in chunk.split(",")]
    return [item.strip() for item in items if item.strip()]


def _overlay(base: BaseModel, patch: BaseModel | None) -> Any:
    if patch is None:
        return base.model_copy(deep=True)
    return base.model_copy(update=patch.model_dump(exclude_unset=True), deep=True)


def build_config(
    base: McpConfig | Mapping[str, Any] | None = None, overrides: ConfigOverrides | None = None
) -> McpConfig:
    """Merge ``base``, the selected profile, and ``overrides`` into one config.

    An unknown profile name is reported and ignored rather than fatal.

    Raises:
        ConfigurationError: When ``base`` is a mapping that fails validation.
    """
    config = _coerce(base)
    overrides = overrides or ConfigOverrides()

    topics: TopicFilter = _overlay(config.topics, None)
    commands: CommandFilter = _overlay(config.commands, None)
    limits: ToolLimits = _overlay(config.tool_limits, None)

    profile_name = overrides.profile or config.default_profile
    if profile_name:
        profile = config.profiles.get(profile_name)
        if profile is None:
            available = ", ".join(sorted(config.profiles)) or "none"
            _logger.warning("Profile %r not found (available: %s); using base configuration", profile_name, available)
        else:
            _logger.info("Using configuration profile %r", profile_name)
            topics = _overlay(topics, profile.topics)
            commands = _overlay(commands, profile.commands)
            limits = _overlay(limits, profile.tool_limits)
            if profile.max_tools is not None:
                limits.max_tools = profile.max_tools

    if overrides.max_tools is not None:
        limits.max_tools = overrides.max_tools
    if overrides.strategy is not None:
        limits.strategy = overrides.strategy
    if overrides.include_topics is not None:
        topics.include = list(overrides.include_topics)
    if overrides.exclude_patterns is not None:
        commands.exclude = list(overrides.exclude_patterns)

    merged = config.model_copy(
        update={
            "topics": topics,
            "commands": commands,
            "timeout": overrides.timeout if overrides.timeout is not None else config.timeout,
        }
    )
    max_tools = DEFAULT_MAX_TOOLS if limits.max_tools is None else limits.max_tools
    warn_threshold = limits.warn_threshold
    if warn_threshold is None:
        warn_threshold = math.floor(max_tools * DEFAULT_WARN_RATIO)
    merged.tool_limits = ToolLimits(
        max_tools=max_tools,
        strategy=limits.strategy or DEFAULT_STRATEGY,
        warn_threshold=warn_threshold,
    )
    return merged


def _coerce(base: McpConfig | Mapping[str, Any] | None) -> McpConfig:
    if base is None:
        return McpConfig()
    if isinstance(base, McpConfig):
        return base
    try:
        return McpConfig.model_validate(dict(base))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid climcp configuration: {exc}") from exc


def load_config(path: str | Path) -> McpConfig:
    """Read a JSON or TOML config file.

    For ``pyproject.toml`` only the ``[tool.climcp]`` table is used.

    Raises:
        ConfigurationError: The file is unreadable, malformed, or invalid.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc

    try:
        if path.suffix == ".json":
            data = orjson.loads(raw)
        elif path.suffix == ".toml":
            data = tomllib.loads(raw.decode("utf-8"))
            if path.name == "pyproject.toml":
                data = data.get("tool", {}).get("climcp", {})
        else:
            raise ConfigurationError(f"Unsupported config format: {path.suffix or path.name}")
    except (orjson.JSONDecodeError, tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Malformed config file {path}: {exc}") from exc

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file {path} must contain an object at the top level")
    _logger.debug("Loaded configuration from %s", path)
    return _coerce(data)


def discover_config(directory: str | Path = ".") -> McpConfig | None:
    """Load the first config file found in ``directory``, if any."""
    root = Path(directory)
    for filename in CONFIG_FILENAMES:
        candidate = root / filename
        if not candidate.is_file():
            continue
        if filename == "pyproject.toml":
            try:
                data = tomllib.loads(candidate.read_text("utf-8"))
            except (OSError, tomllib.TOMLDecodeError) as exc:
                raise ConfigurationError(f"Malformed config file {candidate}: {exc}") from exc
            if "climcp" not in data.get("tool", {}):
                continue
        return load_config(candidate)
    return None


__all__ = [
    "CommandFilter",
    "ConfigOverrides",
    "DEFAULT_MAX_TOOLS",
    "DEFAULT_STRATEGY",
    "DEFAULT_TOOL_TIMEOUT",
    "McpConfig",
    "Profile",
    "STRATEGIES",
    "Strategy",
    "ToolLimits",
    "TopicFilter",
    "build_config",
    "discover_config",
    "load_config",
    "split_csv",
]
