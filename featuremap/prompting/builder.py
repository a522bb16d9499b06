"""Builds stage prompts from Jinja templates."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..models import ComponentSummary, FileAnalysis, Stage, StructuralFootprint
from .constants import MERMAID_RULE, SYSTEM_PROMPTS, TEMPLATE_NAMES, VIEW_FILE_TOOL_NAME


class PromptBuilder:
    """Renders the prompt body and system prompt for each pipeline stage."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
            undefined=StrictUndefined,
        )

    def system_prompt(self, stage: Stage) -> str:
        return SYSTEM_PROMPTS[stage]

    def prefilter_prompt(
        self, relative_paths: Sequence[str], *, chunk_index: int, chunk_count: int
    ) -> str:
        return self._render(
            Stage.PREFILTER,
            paths=list(relative_paths),
            chunk_number=chunk_index + 1,
            chunk_count=chunk_count,
        )

    def file_prompt(self, footprint: StructuralFootprint) -> str:
        return self._render(
            Stage.FILE,
            footprint=footprint.to_payload(),
            tool_name=VIEW_FILE_TOOL_NAME,
        )

    def component_prompt(
        self,
        directory: str,
        analyses: Sequence[FileAnalysis],
        *,
        omitted: Sequence[str] = (),
    ) -> str:
        return self._render(
            Stage.COMPONENT,
            directory=directory,
            analyses=list(analyses),
            omitted=list(omitted),
            mermaid_rule=MERMAID_RULE,
        )

    def global_prompt(
        self,
        components: Sequence[ComponentSummary],
        *,
        omitted: Sequence[str] = (),
    ) -> str:
        return self._render(
            Stage.GLOBAL,
            components=list(components),
            omitted=list(omitted),
            mermaid_rule=MERMAID_RULE,
        )

    def _render(self, stage: Stage, **context: object) -> str:
        template = self._env.get_template(TEMPLATE_NAMES[stage])
        return template.render(**context).strip() + "\n"


__all__ = ["PromptBuilder"]
