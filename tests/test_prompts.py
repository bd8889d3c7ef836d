# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

"""Prompt catalog and rendering."""

from __future__ import annotations

from mcp.shared.exceptions import McpError
from pydantic import BaseModel
import pytest

from climcp import types
from climcp.command import Command
from climcp.prompt import Prompt, PromptArgument, coerce_prompt
from climcp.server.adapters import normalize_prompt_result
from tests.helpers import Catalog, DynamicCatalog, ready_server


@pytest.mark.anyio
async def test_list_prompts() -> None:
    server = await ready_server([Catalog])
    result = await server.handle("prompts/list")
    review, summary = result["prompts"]
    assert review == {
        "name": "review",
        "description": "Review a change",
        "arguments": [{"name": "target", "required": True}],
    }
    assert summary["name"] == "summary"
    assert "arguments" not in summary


@pytest.mark.anyio
async def test_get_prompt_runs_handler() -> None:
    server = await ready_server([Catalog])
    result = await server.invoke_prompt("review", {"target": "PR 12"})
    assert result.description == "Review a change"
    assert len(result.messages) == 1
    assert result.messages[0].role == "user"
    assert result.messages[0].content.text == "Please review PR 12"


@pytest.mark.anyio
async def test_prompt_without_handler_returns_description() -> None:
    server = await ready_server([Catalog])
    result = await server.invoke_prompt("summary")
    assert result.messages[0].role == "assistant"
    assert result.messages[0].content.text == "Summarize the repository"


@pytest.mark.anyio
async def test_missing_required_argument_is_invalid_params() -> None:
    server = await ready_server([Catalog])
    with pytest.raises(McpError) as excinfo:
        await server.invoke_prompt("review", {})
    assert excinfo.value.error.code == types.INVALID_PARAMS
    assert excinfo.value.error.data["errors"][0]["field"] == "target"


@pytest.mark.anyio
async def test_unknown_prompt() -> None:
    server = await ready_server([Catalog])
    with pytest.raises(McpError) as excinfo:
        await server.handle("prompts/get", {"name": "missing"})
    assert excinfo.value.error.code == types.PROMPT_NOT_FOUND == -32003


@pytest.mark.anyio
async def test_dynamic_prompt_from_provider() -> None:
    server = await ready_server([DynamicCatalog])
    assert server.prompts.prompt_names == ["dyn-prompt"]
    result = await server.invoke_prompt("dyn-prompt", {"topic": "x"})
    assert result.messages[0].content.text == "dynamic"
    server.close()


@pytest.mark.anyio
async def test_argument_schema_model_and_failing_handler() -> None:
    class Release(BaseModel):
        version: str
        dry_run: bool = False

    def _render(arguments: dict[str, object]) -> dict[str, object]:
        return {"messages": [{"role": "user", "content": f"release {arguments['version']} dry={arguments['dry_run']}"}]}

    def _explode() -> str:
        raise RuntimeError("template missing")

    class Releaser(Command):
        id = "release"
        mcp_prompts = (
            Prompt(name="release", argument_schema=Release, handler=_render),
            Prompt(name="broken", handler=_explode),
        )

        def run(self) -> None:
            return None

    server = await ready_server([Releaser])
    result = await server.invoke_prompt("release", {"version": "1.2.0"})
    assert result.messages[0].content.text == "release 1.2.0 dry=False"

    with pytest.raises(McpError) as excinfo:
        await server.invoke_prompt("broken")
    assert excinfo.value.error.code == types.INTERNAL_ERROR
    assert "template missing" in excinfo.value.error.message


def test_coerce_prompt_from_mapping() -> None:
    prompt = coerce_prompt(
        {"name": "p", "description": "d", "arguments": [{"name": "a", "required": True}, PromptArgument("b")]}
    )
    assert prompt.arguments == (PromptArgument("a", required=True), PromptArgument("b"))
    assert prompt.validate_arguments({"a": "1"}) == {"a": "1"}


def test_normalize_prompt_result_shapes() -> None:
    from_text = normalize_prompt_result("d", "hello")
    assert from_text.messages[0].role == "user"
    assert from_text.description == "d"

    pairs = normalize_prompt_result(None, [("assistant", "hi"), {"role": "user", "content": "yo"}])
    assert [message.role for message in pairs.messages] == ["assistant", "user"]

    with pytest.raises(TypeError):
        normalize_prompt_result(None, 42)
