"""Tests for the reasoning service client adapter."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from featuremap.config import Credentials, LLMConfig
from featuremap.llm import (
    ModelRequest,
    ReasoningClient,
    TextResponse,
    ToolCall,
    ToolUseResponse,
    user_message,
)
from featuremap.llm.client import parse_response


def test_parse_response_returns_text_for_end_turn() -> None:
    response = parse_response(
        {
            "stop_reason": "end_turn",
            "content": [{"type": "text", "text": "Overview\n- feature"}],
        }
    )
    assert response == TextResponse(text="Overview\n- feature")


def test_parse_response_returns_tool_use_with_verbatim_content() -> None:
    message = SimpleNamespace(
        stop_reason="tool_use",
        content=[
            SimpleNamespace(type="text", text="Let me look."),
            SimpleNamespace(type="tool_use", id="toolu_1", name="view_file", input={"reason": "x"}),
        ],
    )

    response = parse_response(message)

    assert isinstance(response, ToolUseResponse)
    assert response.calls == (ToolCall(id="toolu_1", name="view_file", input={"reason": "x"}),)
    assert response.content[0] == {"type": "text", "text": "Let me look."}
    assert response.content[1]["type"] == "tool_use"


def test_parse_response_without_text_blocks_yields_empty_text() -> None:
    assert parse_response({"stop_reason": "end_turn", "content": []}) == TextResponse(text="")


def test_parse_response_tool_use_without_tool_blocks_falls_back_to_text() -> None:
    response = parse_response(
        {"stop_reason": "tool_use", "content": [{"type": "text", "text": "hmm"}]}
    )
    assert response == TextResponse(text="hmm")


@pytest.mark.asyncio
async def test_client_delegates_to_injected_sender() -> None:
    seen = []

    async def sender(request: ModelRequest) -> TextResponse:
        seen.append(request)
        return TextResponse(text="ok")

    client = ReasoningClient("model-x", sender=sender)
    request = ModelRequest(messages=(user_message("hi"),), system="sys", max_tokens=10)

    assert await client.complete(request) == TextResponse(text="ok")
    assert seen == [request]


@pytest.mark.asyncio
async def test_anthropic_sender_builds_messages_payload() -> None:
    captured = {}

    class _Messages:
        async def create(self, **kwargs):  # type: ignore[no-untyped-def]
            captured.update(kwargs)
            return {"stop_reason": "end_turn", "content": [{"type": "text", "text": "done"}]}

    client = ReasoningClient.from_config(
        LLMConfig(model="claude-test"), Credentials(api_key="key")
    )
    client._sdk_client = SimpleNamespace(messages=_Messages())  # type: ignore[assignment]

    response = await client.complete(
        ModelRequest(
            messages=(user_message("hello"),),
            system="system text",
            max_tokens=42,
            temperature=0.2,
        )
    )

    assert response == TextResponse(text="done")
    assert captured["model"] == "claude-test"
    assert captured["max_tokens"] == 42
    assert captured["system"] == "system text"
    assert captured["temperature"] == 0.2
    assert captured["messages"] == [{"role": "user", "content": "hello"}]
    assert "tools" not in captured
