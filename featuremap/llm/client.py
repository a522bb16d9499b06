"""Async adapter around the Anthropic Messages API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from anthropic import AsyncAnthropic

from ..config import Credentials, LLMConfig


@dataclass(frozen=True)
class ToolSpec:
    """A tool the model may invoke."""

    name: str
    description: str
    input_schema: Mapping[str, Any]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": dict(self.input_schema),
        }


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation requested by the model."""

    id: str
    name: str
    input: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TextResponse:
    """The model finalized its answer."""

    text: str


@dataclass(frozen=True)
class ToolUseResponse:
    """The model asked for one or more tools before answering.

    ``content`` holds the assistant blocks verbatim so they can be echoed back
    into the conversation ahead of the tool results.
    """

    calls: Tuple[ToolCall, ...]
    content: Tuple[Mapping[str, Any], ...]


ModelResponse = Union[TextResponse, ToolUseResponse]


@dataclass(frozen=True)
class ModelRequest:
    """One call to the reasoning service."""

    messages: Tuple[Mapping[str, Any], ...]
    system: Optional[str] = None
    max_tokens: int = 1024
    temperature: Optional[float] = None
    tools: Tuple[ToolSpec, ...] = ()


Sender = Callable[[ModelRequest], Awaitable[ModelResponse]]


class ReasoningClient:
    """Sends conversations to the reasoning service and normalises its replies."""

    def __init__(
        self,
        model: str,
        *,
        credentials: Credentials | None = None,
        base_url: str | None = None,
        sdk_max_retries: int = 5,
        request_timeout: float | None = None,
        sender: Sender | None = None,
    ) -> None:
        self.model = model
        self.credentials = credentials or Credentials()
        self.base_url = base_url
        self.sdk_max_retries = sdk_max_retries
        self.request_timeout = request_timeout
        self._sdk_client: AsyncAnthropic | None = None
        self._sender: Sender = sender or self._anthropic_sender

    @classmethod
    def from_config(cls, config: LLMConfig, credentials: Credentials) -> "ReasoningClient":
        return cls(
            config.model,
            credentials=credentials,
            base_url=config.base_url,
            sdk_max_retries=config.sdk_max_retries,
            request_timeout=config.request_timeout,
        )

    async def complete(self, request: ModelRequest) -> ModelResponse:
        """Send ``request`` and return a :data:`ModelResponse`."""
        return await self._sender(request)

    def _client(self) -> AsyncAnthropic:
        if self._sdk_client is None:
            kwargs: Dict[str, Any] = {"max_retries": self.sdk_max_retries}
            if self.credentials.api_key:
                kwargs["api_key"] = self.credentials.api_key
            if self.credentials.auth_token:
                kwargs["auth_token"] = self.credentials.auth_token
            if self.base_url:
                kwargs["base_url"] = self.base_url
            if self.request_timeout is not None:
                kwargs["timeout"] = self.request_timeout
            self._sdk_client = AsyncAnthropic(**kwargs)
        return self._sdk_client

    async def _anthropic_sender(self, request: ModelRequest) -> ModelResponse:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "messages": [dict(message) for message in request.messages],
        }
        if request.system:
            kwargs["system"] = request.system
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.tools:
            kwargs["tools"] = [tool.to_payload() for tool in request.tools]
        response = await self._client().messages.create(**kwargs)
        return parse_response(response)


def parse_response(response: Any) -> ModelResponse:
    """Convert an SDK message (or its dict form) into a tagged response."""
    stop_reason = _field(response, "stop_reason")
    blocks = [_block_to_dict(block) for block in (_field(response, "content") or [])]
    blocks = [block for block in blocks if block is not None]

    if stop_reason == "tool_use":
        calls = tuple(
            ToolCall(
                id=str(block["id"]),
                name=str(block["name"]),
                input=dict(block.get("input") or {}),
            )
            for block in blocks
            if block.get("type") == "tool_use"
        )
        if calls:
            return ToolUseResponse(calls=calls, content=tuple(blocks))

    text = next(
        (block["text"] for block in blocks if block.get("type") == "text"),
        "",
    )
    return TextResponse(text=text)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _block_to_dict(block: Any) -> Optional[Dict[str, Any]]:
    block_type = _field(block, "type")
    if block_type == "text":
        return {"type": "text", "text": _field(block, "text") or ""}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": _field(block, "id"),
            "name": _field(block, "name"),
            "input": _field(block, "input") or {},
        }
    return None


def user_message(content: str | Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(content, str):
        return {"role": "user", "content": content}
    return {"role": "user", "content": [dict(block) for block in content]}


def assistant_message(content: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    return {"role": "assistant", "content": [dict(block) for block in content]}


__all__ = [
    "ModelRequest",
    "ModelResponse",
    "ReasoningClient",
    "Sender",
    "TextResponse",
    "ToolCall",
    "ToolSpec",
    "ToolUseResponse",
    "assistant_message",
    "parse_response",
    "user_message",
]
