# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Resource, resource-template, and root catalogs.

Collection walks the filtered commands concurrently.  Each command may
declare items statically or provide them at runtime through the provider
interfaces in :mod:`climcp.command`; a failing provider contributes nothing
and leaves every other command untouched.

``resources/read`` resolves a URI in this order, first match wins:

1. an exact resource URI (static content, handler, or a placeholder);
2. a root URI;
3. the first resource template that matches.

Reads served by a handler or a template are "dynamic" and fire a
``notifications/resources/updated`` for subscribed URIs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import anyio

from ._owner import CommandOwner
from ..adapters import normalize_resource_payload
from ..notifications import NotificationService
from ..pagination import paginate_sequence
from ... import types
from ...command import CommandSpec, ResourceProvider, ResourceTemplateProvider, RootProvider
from ...exceptions import protocol_error, resource_not_found
from ...resource import (
    HandlerResolutionError,
    Reader,
    Resource,
    ResourceTemplate,
    Root,
    coerce_resource,
    coerce_root,
    coerce_template,
    resolve_reader,
)
from ...utils.uri import match_uri_template


@dataclass(slots=True)
class ResourceEntry:
    resource: Resource
    command_id: str
    definition: types.Resource
    reader: Reader | None = None


@dataclass(slots=True)
class TemplateEntry:
    template: ResourceTemplate
    command_id: str
    definition: types.ResourceTemplate
    reader: Reader | None = None


@dataclass(slots=True)
class RootEntry:
    root: Root
    command_id: str


class ResourcesService:
    def __init__(
        self,
        *,
        logger,
        notifications: NotificationService,
        pagination_limit: int,
    ) -> None:
        self._logger = logger
        self._notifications = notifications
        self._pagination_limit = pagination_limit
        self._resources: dict[str, ResourceEntry] = {}
        self._templates: list[TemplateEntry] = []
        self._roots: dict[str, RootEntry] = {}

    # ------------------------------------------------------------------
    # Catalog access
    # ------------------------------------------------------------------

    @property
    def resources(self) -> list[ResourceEntry]:
        return list(self._resources.values())

    @property
    def templates(self) -> list[TemplateEntry]:
        return list(self._templates)

    @property
    def roots(self) -> list[RootEntry]:
        return list(self._roots.values())

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    async def collect(self, commands: Iterable[CommandSpec]) -> None:
        async with anyio.create_task_group() as tg:
            for command in commands:
                tg.start_soon(self._collect_from, command)
        self._logger.debug(
            "Collected %d resources, %d templates, %d roots",
            len(self._resources),
            len(self._templates),
            len(self._roots),
        )

    async def _collect_from(self, command: CommandSpec) -> None:
        owner = CommandOwner(command, self._logger)

        for item in command.resources:
            self.add_resource(item, command.id, owner)
        for item in command.resource_templates:
            self.add_template(item, command.id, owner)
        for item in command.roots:
            self.add_root(item, command.id)

        dynamic = await owner.provide(ResourceProvider, "get_mcp_resources")
        for item in dynamic:
            if self.add_resource(item, command.id, owner):
                self._notifications.notify_resource_list_changed(f"{command.id}:resources")

        dynamic_templates = await owner.provide(ResourceTemplateProvider, "get_mcp_resource_templates")
        for item in dynamic_templates:
            if self.add_template(item, command.id, owner):
                self._notifications.notify_resource_list_changed(f"{command.id}:templates")

        for item in await owner.provide(RootProvider, "get_mcp_roots"):
            self.add_root(item, command.id)

    def add_resource(self, item: Resource | Mapping[str, Any], command_id: str, owner: CommandOwner | None) -> bool:
        try:
            resource = coerce_resource(item)
            definition = resource.to_mcp()
            reader = None
            if resource.content is None and resource.handler is not None:
                reader = resolve_reader(resource.handler, owner.get() if owner else None)
        except (KeyError, TypeError, ValueError, HandlerResolutionError) as exc:
            self._logger.warning("Skipping resource from %s: %s", command_id, exc)
            return False

        if resource.uri in self._resources:
            self._logger.warning(
                "Resource %s from %s already registered by %s",
                resource.uri,
                command_id,
                self._resources[resource.uri].command_id,
            )
            return False
        self._resources[resource.uri] = ResourceEntry(resource, command_id, definition, reader)
        return True

    def add_template(
        self, item: ResourceTemplate | Mapping[str, Any], command_id: str, owner: CommandOwner | None
    ) -> bool:
        try:
            template = coerce_template(item)
            definition = template.to_mcp()
            reader = None
            if template.handler is not None:
                reader = resolve_reader(template.handler, owner.get() if owner else None)
        except (KeyError, TypeError, ValueError, HandlerResolutionError) as exc:
            self._logger.warning("Skipping resource template from %s: %s", command_id, exc)
            return False
        self._templates.append(TemplateEntry(template, command_id, definition, reader))
        return True

    def add_root(self, item: Root | Mapping[str, Any], command_id: str) -> bool:
        try:
            root = coerce_root(item)
        except (KeyError, TypeError, ValueError) as exc:
            self._logger.warning("Skipping root from %s: %s", command_id, exc)
            return False
        if root.uri in self._roots:
            return False
        self._roots[root.uri] = RootEntry(root, command_id)
        return True

    # ------------------------------------------------------------------
    # Protocol operations
    # ------------------------------------------------------------------

    async def list_resources(self, cursor: str | None = None) -> types.ListResourcesResult:
        definitions = [entry.definition for entry in self._resources.values()]
        page, next_cursor = paginate_sequence(definitions, cursor, limit=self._pagination_limit)
        return types.ListResourcesResult(resources=page, nextCursor=next_cursor)

    def list_roots(self) -> list[dict[str, Any]]:
        return [entry.root.to_payload() for entry in self._roots.values()]

    async def list_templates(self, cursor: str | None = None) -> types.ListResourceTemplatesResult:
        definitions = [entry.definition for entry in self._templates]
        page, next_cursor = paginate_sequence(definitions, cursor, limit=self._pagination_limit)
        return types.ListResourceTemplatesResult(resourceTemplates=page, nextCursor=next_cursor)

    async def read(self, uri: str) -> types.ReadResourceResult:
        """Resolve ``uri``.

        Raises:
            McpError: ``RESOURCE_NOT_FOUND`` when nothing matches or a handler
                fails.
        """
        entry = self._resources.get(uri)
        if entry is not None:
            resource = entry.resource
            if resource.content is not None:
                return normalize_resource_payload(uri, resource.mime_type, resource.content)
            if entry.reader is not None:
                payload = await self._run_reader(uri, entry.reader, {})
                await self._notifications.notify_resource_updated(uri)
                return normalize_resource_payload(uri, resource.mime_type, payload)
            return normalize_resource_payload(uri, resource.mime_type, resource.placeholder())

        root_entry = self._roots.get(uri)
        if root_entry is not None:
            return normalize_resource_payload(uri, "text/plain", root_entry.root.describe())

        matched = self.match_template(uri)
        if matched is not None:
            template_entry, params = matched
            template = template_entry.template
            if template_entry.reader is not None:
                payload = await self._run_reader(uri, template_entry.reader, params)
            else:
                payload = template.describe_match(uri, params)
            await self._notifications.notify_resource_updated(uri)
            return normalize_resource_payload(uri, template.mime_type, payload)

        raise resource_not_found(uri)

    async def _run_reader(self, uri: str, reader: Reader, params: Mapping[str, str]) -> Any:
        try:
            return await reader(params)
        except Exception as exc:
            self._logger.warning("Failed to read resource %s: %s", uri, exc)
            raise protocol_error(
                types.RESOURCE_NOT_FOUND, f"Failed to read resource {uri}: {exc}", {"uri": uri}
            ) from exc

    def match_template(self, uri: str) -> tuple[TemplateEntry, dict[str, str]] | None:
        for entry in self._templates:
            params = match_uri_template(uri, entry.template.uri_template)
            if params is not None:
                return entry, params
        return None


__all__ = ["ResourceEntry", "ResourcesService", "RootEntry", "TemplateEntry"]
