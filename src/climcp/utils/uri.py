# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Segment-wise matching for ``{param}`` resource URI templates.

Templates and URIs are split on ``/``.  A ``{name}`` segment captures a
single URI segment, except when it is the last template segment: then it
captures everything that is left, so ``files://{path}`` can address
``files://src/app/main.py``.
"""

from __future__ import annotations

from collections.abc import Mapping
import re
from urllib.parse import quote, unquote


_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def _param_name(segment: str) -> str | None:
    if len(segment) > 2 and segment.startswith("{") and segment.endswith("}"):
        return segment[1:-1]
    return None


def is_template(uri: str) -> bool:
    return _PLACEHOLDER.search(uri) is not None


def template_params(template: str) -> list[str]:
    """Return parameter names in the order they appear in ``template``."""
    return _PLACEHOLDER.findall(template)


def match_uri_template(uri: str, template: str) -> dict[str, str] | None:
    """Match ``uri`` against ``template``.

    Returns:
        The captured parameters (percent-decoded), or ``None`` when the URI
        does not fit the template.
    """
    template_parts = template.split("/")
    uri_parts = uri.split("/")
    params: dict[str, str] = {}
    last = len(template_parts) - 1

    for index, part in enumerate(template_parts):
        name = _param_name(part)
        if name is not None and index == last:
            if index > len(uri_parts) - 1:
                return None
            params[name] = unquote("/".join(uri_parts[index:]))
            return params

        if index >= len(uri_parts):
            return None

        if name is not None:
            params[name] = unquote(uri_parts[index])
        elif part != uri_parts[index]:
            return None

    if len(uri_parts) != len(template_parts):
        return None
    return params


def resolve_uri_template(template: str, params: Mapping[str, object]) -> str:
    """Substitute ``params`` into ``template``.

    Missing parameters keep their ``{name}`` placeholder so partially resolved
    templates stay readable in logs.
    """

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in params or params[key] is None:
            return match.group(0)
        return quote(str(params[key]), safe="")

    return _PLACEHOLDER.sub(_replace, template)


__all__ = ["is_template", "match_uri_template", "resolve_uri_template", "template_params"]
