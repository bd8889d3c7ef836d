# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Shape command output and handler return values into MCP result models.

The services stay thin; everything that decides what a client actually sees
for ``tools/call``, ``resources/read`` and ``prompts/get`` lives here.
"""

from __future__ import annotations

import base64
from collections.abc import Iterable, Mapping
from typing import Any

import orjson

from .. import types


NO_OUTPUT_TEXT = "Command executed successfully with no output"


def _text_result(text: str, *, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=is_error)


def command_success(stdout: str, stderr: str) -> types.CallToolResult:
    """Text for a command that returned normally.

    Captured stderr is appended under an ``Errors:`` heading.
    """
    text = stdout
    if stderr:
        text = f"{text}\nErrors:\n{stderr}"
    if not text.strip():
        text = NO_OUTPUT_TEXT
    return _text_result(text)


def command_failure(error: BaseException | str, partial_output: str = "") -> types.CallToolResult:
    message = str(error) or type(error).__name__
    text = f"Error: {message}"
    if partial_output:
        text = f"{text}\nOutput: {partial_output}"
    return _text_result(text, is_error=True)


def normalize_resource_payload(uri: str, declared_mime: str | None, payload: Any) -> types.ReadResourceResult:
    """Coerce resource handler output into ``ReadResourceResult``.

    ``str`` becomes text content, ``bytes`` a base64 blob, mappings and lists
    of plain data are JSON-encoded.
    """
    if isinstance(payload, types.ReadResourceResult):
        return payload

    if isinstance(payload, (types.TextResourceContents, types.BlobResourceContents)):
        return types.ReadResourceResult(contents=[payload])

    if isinstance(payload, list) and payload and all(
        isinstance(item, (types.TextResourceContents, types.BlobResourceContents)) for item in payload
    ):
        return types.ReadResourceResult(contents=payload)

    if isinstance(payload, (bytes, bytearray)):
        encoded = base64.b64encode(bytes(payload)).decode("ascii")
        blob = types.BlobResourceContents(uri=uri, mimeType=declared_mime or "application/octet-stream", blob=encoded)
        return types.ReadResourceResult(contents=[blob])

    if isinstance(payload, str):
        text, mime = payload, declared_mime or "text/plain"
    elif isinstance(payload, (Mapping, list, tuple)):
        text, mime = orjson.dumps(payload, default=str).decode(), declared_mime or "application/json"
    else:
        text, mime = ("" if payload is None else str(payload)), declared_mime or "text/plain"

    return types.ReadResourceResult(contents=[types.TextResourceContents(uri=uri, mimeType=mime, text=text)])


def default_prompt_result(name: str, description: str | None) -> types.GetPromptResult:
    """Result for a prompt without a handler: its description as one assistant message."""
    text = description or f"Prompt: {name}"
    return types.GetPromptResult(
        description=description,
        messages=[types.PromptMessage(role="assistant", content=types.TextContent(type="text", text=text))],
    )


def normalize_prompt_result(description: str | None, value: Any) -> types.GetPromptResult:
    """Coerce a prompt handler's return value into ``GetPromptResult``.

    Accepts a ready result, a mapping with ``messages``, a sequence of
    messages or ``(role, text)`` pairs, or plain text (one user message).
    """
    if isinstance(value, types.GetPromptResult):
        return value

    if isinstance(value, Mapping):
        data = dict(value)
        data.setdefault("description", description)
        data["messages"] = [_coerce_message(item) for item in data.get("messages") or ()]
        return types.GetPromptResult.model_validate(data)

    if isinstance(value, str):
        return types.GetPromptResult(description=description, messages=[_message("user", value)])

    if isinstance(value, Iterable):
        return types.GetPromptResult(description=description, messages=[_coerce_message(item) for item in value])

    raise TypeError(f"Unsupported prompt result {type(value).__name__}")


def _message(role: str, text: str) -> types.PromptMessage:
    return types.PromptMessage(role=role, content=types.TextContent(type="text", text=text))  # type: ignore[arg-type]


def _coerce_message(item: Any) -> types.PromptMessage:
    if isinstance(item, types.PromptMessage):
        return item
    if isinstance(item, tuple) and len(item) == 2:
        role, text = item
        return _message(str(role), str(text))
    if isinstance(item, Mapping):
        data = dict(item)
        content = data.get("content")
        if isinstance(content, str):
            data["content"] = {"type": "text", "text": content}
        return types.PromptMessage.model_validate(data)
    raise TypeError(f"Unsupported prompt message {item!r}")


__all__ = [
    "NO_OUTPUT_TEXT",
    "command_failure",
    "command_success",
    "default_prompt_result",
    "normalize_prompt_result",
    "normalize_resource_payload",
]
