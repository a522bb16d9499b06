"""Assembles the layered feature-map document."""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import aiofiles
import aiofiles.os

from ..models import ComponentSummary, FileAnalysis, Stage, UnitFailure
from .lint import MarkdownLinter
from .toc import TableOfContentsBuilder

TITLE = "# Codebase Architecture & Feature Map"
COMPONENT_HEADING = "## Component Breakdown"
FILE_HEADING = "## File-Level Details"


class DocumentAssembler:
    """Renders global, component and file layers in that order."""

    def __init__(
        self,
        *,
        toc: bool = True,
        linter: MarkdownLinter | None = None,
        toc_builder: TableOfContentsBuilder | None = None,
    ) -> None:
        self.toc = toc
        self.linter = linter or MarkdownLinter()
        self.toc_builder = toc_builder or TableOfContentsBuilder()

    def render(
        self,
        global_architecture: str,
        components: Sequence[ComponentSummary],
        files: Sequence[FileAnalysis],
        failures: Sequence[UnitFailure] = (),
    ) -> str:
        parts: List[str] = [TITLE, ""]
        if self.toc:
            parts.extend([TableOfContentsBuilder.PLACEHOLDER, ""])
        notice = partial_notice(failures)
        if notice:
            parts.extend([notice, ""])
        parts.extend([global_architecture.strip(), "", "---", "", COMPONENT_HEADING, ""])
        for component in components:
            parts.extend([f"### Directory: `{component.dir}`", component.summary.strip(), ""])
        parts.extend(["---", "", FILE_HEADING, ""])
        for analysis in files:
            parts.extend([f"#### `{analysis.path}`", analysis.features.strip(), ""])

        markdown = "\n".join(parts)
        if self.toc:
            markdown = self.toc_builder.build(markdown)
        return self.linter.lint(markdown)

    async def write(self, path: Path, markdown: str) -> Path:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as handle:
            await handle.write(markdown)
        return path


def partial_notice(failures: Sequence[UnitFailure]) -> str:
    """Blockquote naming every unit missing from the document, or ``""``."""
    files = sorted({failure.key for failure in failures if failure.stage is Stage.FILE})
    components = sorted(
        {failure.key for failure in failures if failure.stage is Stage.COMPONENT}
    )
    if not files and not components:
        return ""
    lines = [
        "> **Partial result:** some units could not be fully analyzed and are missing "
        "or incomplete in this document. Re-run to retry them; completed work is cached.",
    ]
    if files:
        lines.extend([">", "> Files: " + ", ".join(f"`{key}`" for key in files)])
    if components:
        lines.extend([">", "> Components: " + ", ".join(f"`{key}`" for key in components)])
    return "\n".join(lines)


__all__ = ["COMPONENT_HEADING", "DocumentAssembler", "FILE_HEADING", "TITLE", "partial_notice"]
