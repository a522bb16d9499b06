"""Tests for the turn-bounded feature extraction loop."""

from __future__ import annotations

from pathlib import Path

import pytest

from featuremap.llm import TextResponse, ToolCall, ToolUseResponse
from featuremap.models import StructuralFootprint
from featuremap.pipeline import (
    LOOP_EXHAUSTED_MESSAGE,
    Conversation,
    FileFeatureExtractor,
    LoopState,
    advance,
    resolve_tools,
)
from featuremap.prompting import PromptBuilder
from featuremap.llm import RetryPolicy
from tests._fixtures.fake_client import ScriptedSender, fake_client


def _tool_use(call_id: str = "toolu_1", name: str = "view_file") -> ToolUseResponse:
    block = {"type": "tool_use", "id": call_id, "name": name, "input": {"reason": "need source"}}
    return ToolUseResponse(
        calls=(ToolCall(id=call_id, name=name, input={"reason": "need source"}),),
        content=(block,),
    )


async def _no_sleep(delay: float) -> None:
    return None


def _extractor(sender: ScriptedSender, root: Path, **kwargs) -> FileFeatureExtractor:  # type: ignore[no-untyped-def]
    return FileFeatureExtractor(
        fake_client(sender),
        PromptBuilder(),
        root,
        policy=RetryPolicy(max_retries=3, sleep=_no_sleep),
        **kwargs,
    )


def test_advance_finalizes_on_text() -> None:
    start = Conversation.start("prompt")
    after = advance(start, TextResponse(text="features"))

    assert after.state is LoopState.FINALIZED
    assert after.answer == "features"
    assert after.turn == 1
    assert start.state is LoopState.AWAITING_MODEL
    assert start.messages == after.messages


def test_advance_records_tool_request_without_mutating_history() -> None:
    start = Conversation.start("prompt")
    after = advance(start, _tool_use())

    assert after.state is LoopState.TOOL_REQUESTED
    assert [call.id for call in after.pending] == ["toolu_1"]
    assert len(start.messages) == 1
    assert after.messages[-1]["role"] == "assistant"


def test_advance_exhausts_on_final_turn() -> None:
    conversation = Conversation.start("prompt")
    for _ in range(2):
        conversation = advance(conversation, _tool_use(), max_turns=3)
        conversation = resolve_tools(
            conversation,
            [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "src"}],
        )
    conversation = advance(conversation, _tool_use(), max_turns=3)

    assert conversation.state is LoopState.EXHAUSTED
    assert conversation.answer == LOOP_EXHAUSTED_MESSAGE
    assert conversation.done


def test_resolve_tools_requires_every_pending_call() -> None:
    conversation = advance(Conversation.start("prompt"), _tool_use("a"))

    with pytest.raises(ValueError):
        resolve_tools(conversation, [])


def test_advance_rejects_out_of_order_transition() -> None:
    conversation = advance(Conversation.start("prompt"), _tool_use())

    with pytest.raises(ValueError):
        advance(conversation, TextResponse(text="early"))


@pytest.mark.asyncio
async def test_extract_returns_text_without_tools(tmp_path: Path) -> None:
    sender = ScriptedSender([TextResponse(text="Overview\n- Feature")])
    extractor = _extractor(sender, tmp_path)

    result = await extractor.extract(StructuralFootprint.create("a.py", functions=["run"]))

    assert result == "Overview\n- Feature"
    assert len(sender.requests) == 1
    request = sender.requests[0]
    assert request.tools[0].name == "view_file"
    assert request.max_tokens == 1500
    assert '"run"' in request.messages[0]["content"]


@pytest.mark.asyncio
async def test_extract_reads_file_when_tool_requested(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.js").write_text("export const x = 1;\n", encoding="utf-8")
    sender = ScriptedSender([_tool_use(), TextResponse(text="done")])
    extractor = _extractor(sender, tmp_path)

    result = await extractor.extract(StructuralFootprint.unparsed("src/a.js"))

    assert result == "done"
    second = sender.requests[1].messages
    assert [message["role"] for message in second] == ["user", "assistant", "user"]
    tool_result = second[-1]["content"][0]
    assert tool_result["tool_use_id"] == "toolu_1"
    assert tool_result["content"] == "export const x = 1;\n"
    assert "is_error" not in tool_result


@pytest.mark.asyncio
async def test_extract_marks_read_failures_as_errors(tmp_path: Path) -> None:
    sender = ScriptedSender([_tool_use(), TextResponse(text="guess")])
    extractor = _extractor(sender, tmp_path)

    result = await extractor.extract(StructuralFootprint.unparsed("missing.py"))

    assert result == "guess"
    tool_result = sender.requests[1].messages[-1]["content"][0]
    assert tool_result["is_error"] is True
    assert tool_result["content"].startswith("Error: ")


@pytest.mark.asyncio
async def test_extract_answers_every_tool_call_in_one_batch(tmp_path: Path) -> None:
    (tmp_path / "a.py").write_text("x = 1\n", encoding="utf-8")
    blocks = (
        {"type": "tool_use", "id": "t1", "name": "view_file", "input": {}},
        {"type": "tool_use", "id": "t2", "name": "other_tool", "input": {}},
    )
    response = ToolUseResponse(
        calls=(ToolCall(id="t1", name="view_file"), ToolCall(id="t2", name="other_tool")),
        content=blocks,
    )
    sender = ScriptedSender([response, TextResponse(text="ok")])

    await _extractor(sender, tmp_path).extract(StructuralFootprint.unparsed("a.py"))

    results = sender.requests[1].messages[-1]["content"]
    assert [block["tool_use_id"] for block in results] == ["t1", "t2"]
    assert results[0]["content"] == "x = 1\n"
    assert results[1]["is_error"] is True


@pytest.mark.asyncio
async def test_extract_stops_after_five_turns(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "a.py").write_text("x = 1\n", encoding="utf-8")
    sender = ScriptedSender([_tool_use() for _ in range(10)])
    extractor = _extractor(sender, tmp_path)
    reads = []
    original = extractor._run_tool

    async def counting(call, footprint):  # type: ignore[no-untyped-def]
        reads.append(call.id)
        return await original(call, footprint)

    monkeypatch.setattr(extractor, "_run_tool", counting)

    result = await extractor.extract(StructuralFootprint.unparsed("a.py"))

    assert result == LOOP_EXHAUSTED_MESSAGE
    assert len(sender.requests) == 5
    assert len(reads) <= 5


@pytest.mark.asyncio
async def test_extract_retries_rate_limited_turns(tmp_path: Path) -> None:
    class _RateLimited(Exception):
        status_code = 429

    sender = ScriptedSender([_RateLimited(), TextResponse(text="after retry")])

    result = await _extractor(sender, tmp_path).extract(StructuralFootprint.unparsed("a.py"))

    assert result == "after retry"
    assert len(sender.requests) == 2


@pytest.mark.asyncio
async def test_extract_propagates_fatal_errors(tmp_path: Path) -> None:
    sender = ScriptedSender([RuntimeError("service down")])

    with pytest.raises(RuntimeError, match="service down"):
        await _extractor(sender, tmp_path).extract(StructuralFootprint.unparsed("a.py"))
