"""Scheduling primitives and the per-file extraction loop."""

from .agent import (
    LOOP_EXHAUSTED_MESSAGE,
    MAX_TURNS,
    Conversation,
    FileFeatureExtractor,
    LoopState,
    advance,
    resolve_tools,
)
from .executor import bounded_map

__all__ = [
    "Conversation",
    "FileFeatureExtractor",
    "LOOP_EXHAUSTED_MESSAGE",
    "LoopState",
    "MAX_TURNS",
    "advance",
    "bounded_map",
    "resolve_tools",
]
