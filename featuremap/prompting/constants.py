"""Shared constants for reasoning-service prompts."""

from __future__ import annotations

from ..models import Stage

SYSTEM_PROMPTS: dict[Stage, str] = {
    Stage.PREFILTER: (
        "You are a technical analyst. You must return ONLY a raw JSON array of strings "
        "(file paths to retain). No markdown formatting."
    ),
    Stage.FILE: (
        "You are a technical analyst extracting product features. Use your tools to read "
        "code if the structure isn't descriptive enough. Output ONLY the overview and "
        "markdown list of features."
    ),
    Stage.COMPONENT: (
        "You are a Lead Software Architect. Synthesize low-level file features into a "
        "cohesive high-level component summary with a Mermaid diagram."
    ),
    Stage.GLOBAL: (
        "You are a Chief Software Architect. Produce a master architecture and feature "
        "document based on component analyses."
    ),
}

TEMPLATE_NAMES: dict[Stage, str] = {
    Stage.PREFILTER: "prefilter.md.j2",
    Stage.FILE: "file_features.md.j2",
    Stage.COMPONENT: "component_summary.md.j2",
    Stage.GLOBAL: "global_architecture.md.j2",
}

MERMAID_RULE = (
    "CRITICAL INSTRUCTION: When creating Mermaid diagrams, you MUST wrap node labels in "
    "double quotes if they contain any special characters (like parentheses, brackets, or "
    'strange punctuation). For example, use `NodeID["Text with (parentheses)"]` instead of '
    "`NodeID[Text with (parentheses)]`."
)

VIEW_FILE_TOOL_NAME = "view_file"
VIEW_FILE_TOOL_DESCRIPTION = "Reads the raw content of the file being analyzed."


__all__ = [
    "MERMAID_RULE",
    "SYSTEM_PROMPTS",
    "TEMPLATE_NAMES",
    "VIEW_FILE_TOOL_DESCRIPTION",
    "VIEW_FILE_TOOL_NAME",
]
