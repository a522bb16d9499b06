"""Reasoning service adapters."""

from .client import (
    ModelRequest,
    ModelResponse,
    ReasoningClient,
    TextResponse,
    ToolCall,
    ToolSpec,
    ToolUseResponse,
    assistant_message,
    user_message,
)
from .retry import FailureKind, MalformedResponseError, RetryPolicy, classify_failure

__all__ = [
    "FailureKind",
    "MalformedResponseError",
    "ModelRequest",
    "ModelResponse",
    "ReasoningClient",
    "RetryPolicy",
    "TextResponse",
    "ToolCall",
    "ToolSpec",
    "ToolUseResponse",
    "assistant_message",
    "classify_failure",
    "user_message",
]
