# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Resources, resource templates, and roots contributed by commands.

Commands declare these either statically (``mcp_resources = [...]``) or by
implementing a provider interface from :mod:`climcp.command`.  A resource's
content comes from exactly one place:

* ``content`` -- static text or bytes;
* ``handler`` -- a callable, or the name of a method on the owning command;
* neither -- a generated placeholder describing the resource.

Handlers are resolved into a concrete async reader when the catalog is built
(:func:`resolve_reader`), never looked up by name at read time.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from . import types
from .utils.coro import accepts_positional, maybe_await


Reader = Callable[[Mapping[str, str]], Awaitable[Any]]
"""Resolved handler: receives template parameters (empty for plain resources)."""


@dataclass(frozen=True, slots=True)
class StaticContent:
    value: str | bytes


@dataclass(frozen=True, slots=True)
class Callback:
    fn: Callable[..., Any]


@dataclass(frozen=True, slots=True)
class BoundMethod:
    """Method ``name`` looked up once on the owning command instance."""

    name: str


Handler = StaticContent | Callback | BoundMethod
HandlerLike = Handler | str | Callable[..., Any]


class HandlerResolutionError(LookupError):
    """A ``BoundMethod`` handler names nothing callable on its owner."""


def as_handler(value: HandlerLike) -> Handler:
    """Normalize authoring shorthands: ``str`` names a method, callables are callbacks."""
    if isinstance(value, (StaticContent, Callback, BoundMethod)):
        return value
    if isinstance(value, str):
        return BoundMethod(value)
    if callable(value):
        return Callback(value)
    raise TypeError(f"Unsupported handler {value!r}")


def resolve_reader(handler: HandlerLike, owner: object | None) -> Reader:
    """Turn ``handler`` into a reader bound to ``owner``.

    Raises:
        HandlerResolutionError: For a method name ``owner`` does not provide.
    """
    resolved = as_handler(handler)
    if isinstance(resolved, StaticContent):
        value = resolved.value

        async def _static(_params: Mapping[str, str]) -> Any:
            return value

        return _static

    if isinstance(resolved, BoundMethod):
        method = getattr(owner, resolved.name, None) if owner is not None else None
        if not callable(method):
            owner_name = type(owner).__name__ if owner is not None else "<no instance>"
            raise HandlerResolutionError(f"{owner_name} has no handler method {resolved.name!r}")
        fn = method
    else:
        fn = resolved.fn

    takes_params = accepts_positional(fn)

    async def _call(params: Mapping[str, str]) -> Any:
        if takes_params:
            return await maybe_await(fn(dict(params)))
        return await maybe_await(fn())

    return _call


@dataclass(frozen=True, slots=True)
class Resource:
    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = None
    size: int | None = None
    content: str | bytes | None = None
    handler: HandlerLike | None = None

    def to_mcp(self) -> types.Resource:
        return types.Resource(
            uri=self.uri,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
            size=self.size,
        )

    def placeholder(self) -> str:
        return (
            f"Resource: {self.name}\n"
            f"URI: {self.uri}\n"
            f"Description: {self.description or 'No description available'}"
        )

    @property
    def is_dynamic(self) -> bool:
        return self.content is None and self.handler is not None


@dataclass(frozen=True, slots=True)
class ResourceTemplate:
    uri_template: str
    name: str
    description: str | None = None
    mime_type: str | None = None
    handler: HandlerLike | None = None

    def to_mcp(self) -> types.ResourceTemplate:
        return types.ResourceTemplate(
            uriTemplate=self.uri_template,
            name=self.name,
            description=self.description,
            mimeType=self.mime_type,
        )

    def describe_match(self, uri: str, params: Mapping[str, str]) -> str:
        rendered = ", ".join(f"{key}={value}" for key, value in params.items())
        return (
            f"Resource: {self.name}\n"
            f"URI: {uri}\n"
            f"Template: {self.uri_template}\n"
            f"Parameters: {rendered or '(none)'}\n"
            f"Description: {self.description or 'No description available'}"
        )


@dataclass(frozen=True, slots=True)
class Root:
    """Workspace context entry listed beside resources."""

    uri: str
    name: str
    description: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.description is not None:
            payload["description"] = self.description
        return payload

    def describe(self) -> str:
        return f"Root: {self.name}\nURI: {self.uri}\nDescription: {self.description or 'No description available'}"


def coerce_resource(value: Resource | Mapping[str, Any]) -> Resource:
    """Accept provider output given as a plain mapping with camelCase keys."""
    if isinstance(value, Resource):
        return value
    data = dict(value)
    return Resource(
        uri=data["uri"],
        name=data["name"],
        description=data.get("description"),
        mime_type=data.get("mimeType", data.get("mime_type")),
        size=data.get("size"),
        content=data.get("content"),
        handler=data.get("handler"),
    )


def coerce_template(value: ResourceTemplate | Mapping[str, Any]) -> ResourceTemplate:
    if isinstance(value, ResourceTemplate):
        return value
    data = dict(value)
    return ResourceTemplate(
        uri_template=data.get("uriTemplate", data.get("uri_template")),
        name=data["name"],
        description=data.get("description"),
        mime_type=data.get("mimeType", data.get("mime_type")),
        handler=data.get("handler"),
    )


def coerce_root(value: Root | Mapping[str, Any]) -> Root:
    if isinstance(value, Root):
        return value
    data = dict(value)
    return Root(uri=data["uri"], name=data["name"], description=data.get("description"))


__all__ = [
    "BoundMethod",
    "Callback",
    "Handler",
    "HandlerLike",
    "HandlerResolutionError",
    "Reader",
    "Resource",
    "ResourceTemplate",
    "Root",
    "StaticContent",
    "as_handler",
    "coerce_resource",
    "coerce_root",
    "coerce_template",
    "resolve_reader",
]
