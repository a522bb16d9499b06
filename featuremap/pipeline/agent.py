"""Turn-bounded feature extraction conversation for a single file.

The conversation is modelled as an immutable :class:`Conversation` value and
two pure transitions:

- :func:`advance` folds a model response into the conversation
- :func:`resolve_tools` appends the answers to the pending tool calls

:class:`FileFeatureExtractor` drives the transitions against a
:class:`~featuremap.llm.ReasoningClient`, performing the file reads the model
asks for.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import aiofiles

from ..llm import (
    ModelRequest,
    ModelResponse,
    ReasoningClient,
    RetryPolicy,
    TextResponse,
    ToolCall,
    ToolSpec,
    ToolUseResponse,
    assistant_message,
    user_message,
)
from ..logging import get_logger
from ..models import Stage, StructuralFootprint
from ..prompting import PromptBuilder
from ..prompting.constants import VIEW_FILE_TOOL_DESCRIPTION, VIEW_FILE_TOOL_NAME

logger = get_logger("pipeline.agent")

MAX_TURNS = 5
LOOP_EXHAUSTED_MESSAGE = "Error: Agent looped too many times."

VIEW_FILE_TOOL = ToolSpec(
    name=VIEW_FILE_TOOL_NAME,
    description=VIEW_FILE_TOOL_DESCRIPTION,
    input_schema={
        "type": "object",
        "properties": {"reason": {"type": "string"}},
        "required": ["reason"],
    },
)


class LoopState(Enum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_REQUESTED = "tool_requested"
    FINALIZED = "finalized"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Conversation:
    """Message history plus loop bookkeeping; never mutated in place."""

    messages: Tuple[Mapping[str, Any], ...]
    turn: int = 0
    state: LoopState = LoopState.AWAITING_MODEL
    pending: Tuple[ToolCall, ...] = ()
    answer: Optional[str] = None

    @classmethod
    def start(cls, prompt: str) -> "Conversation":
        return cls(messages=(user_message(prompt),))

    @property
    def done(self) -> bool:
        return self.state in (LoopState.FINALIZED, LoopState.EXHAUSTED)


def advance(
    conversation: Conversation, response: ModelResponse, *, max_turns: int = MAX_TURNS
) -> Conversation:
    """Return the conversation after one model turn."""
    if conversation.state is not LoopState.AWAITING_MODEL:
        raise ValueError(f"Cannot advance a conversation in state {conversation.state.value}")
    turn = conversation.turn + 1

    if isinstance(response, TextResponse):
        return replace(
            conversation,
            turn=turn,
            state=LoopState.FINALIZED,
            pending=(),
            answer=response.text,
        )

    if isinstance(response, ToolUseResponse):
        messages = conversation.messages + (assistant_message(response.content),)
        if turn >= max_turns:
            return replace(
                conversation,
                messages=messages,
                turn=turn,
                state=LoopState.EXHAUSTED,
                pending=(),
                answer=LOOP_EXHAUSTED_MESSAGE,
            )
        return replace(
            conversation,
            messages=messages,
            turn=turn,
            state=LoopState.TOOL_REQUESTED,
            pending=response.calls,
        )

    raise TypeError(f"Unsupported model response: {type(response).__name__}")


def resolve_tools(
    conversation: Conversation, results: Sequence[Mapping[str, Any]]
) -> Conversation:
    """Append one batch of ``tool_result`` blocks and hand the turn back to the model."""
    if conversation.state is not LoopState.TOOL_REQUESTED:
        raise ValueError(f"No tool calls pending in state {conversation.state.value}")
    answered = {result.get("tool_use_id") for result in results}
    missing = [call.id for call in conversation.pending if call.id not in answered]
    if missing:
        raise ValueError(f"Tool calls left unanswered: {', '.join(missing)}")
    return replace(
        conversation,
        messages=conversation.messages + (user_message(results),),
        state=LoopState.AWAITING_MODEL,
        pending=(),
    )


def tool_result(call_id: str, content: str, *, is_error: bool = False) -> Dict[str, Any]:
    block: Dict[str, Any] = {
        "type": "tool_result",
        "tool_use_id": call_id,
        "content": content,
    }
    if is_error:
        block["is_error"] = True
    return block


class FileFeatureExtractor:
    """Produces the feature description of one file."""

    def __init__(
        self,
        client: ReasoningClient,
        prompts: PromptBuilder,
        root: Path,
        *,
        policy: RetryPolicy | None = None,
        max_tokens: int = 1500,
        temperature: float | None = 0.2,
        max_turns: int = MAX_TURNS,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.client = client
        self.prompts = prompts
        self.root = root
        self.policy = policy or RetryPolicy(max_retries=3)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_turns = max_turns

    async def extract(self, footprint: StructuralFootprint) -> str:
        conversation = Conversation.start(self.prompts.file_prompt(footprint))
        label = f"File: {footprint.path}"
        while not conversation.done:
            request = ModelRequest(
                messages=conversation.messages,
                system=self.prompts.system_prompt(Stage.FILE),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                tools=(VIEW_FILE_TOOL,),
            )
            response = await self.policy.call(
                lambda: self.client.complete(request), label=label
            )
            conversation = advance(conversation, response, max_turns=self.max_turns)
            if conversation.state is LoopState.TOOL_REQUESTED:
                results = [
                    await self._run_tool(call, footprint) for call in conversation.pending
                ]
                conversation = resolve_tools(conversation, results)

        if conversation.state is LoopState.EXHAUSTED:
            logger.warning("[%s] No final answer after %d turns", label, conversation.turn)
        return conversation.answer or ""

    async def _run_tool(self, call: ToolCall, footprint: StructuralFootprint) -> Dict[str, Any]:
        if call.name != VIEW_FILE_TOOL_NAME:
            return tool_result(call.id, f"Error: unknown tool '{call.name}'", is_error=True)
        path = self.root / footprint.path
        logger.debug("[File: %s] Model requested the raw source", footprint.path)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as handle:
                content = await handle.read()
        except OSError as exc:
            return tool_result(call.id, f"Error: {exc}", is_error=True)
        return tool_result(call.id, content)


__all__ = [
    "Conversation",
    "FileFeatureExtractor",
    "LOOP_EXHAUSTED_MESSAGE",
    "LoopState",
    "MAX_TURNS",
    "VIEW_FILE_TOOL",
    "advance",
    "resolve_tools",
    "tool_result",
]
