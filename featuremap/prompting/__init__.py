"""Prompt construction for the reasoning service."""

from .builder import PromptBuilder
from .constants import SYSTEM_PROMPTS, VIEW_FILE_TOOL_NAME

__all__ = ["PromptBuilder", "SYSTEM_PROMPTS", "VIEW_FILE_TOOL_NAME"]
