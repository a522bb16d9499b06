"""Tests for document assembly and markdown post-processing."""

from __future__ import annotations

from pathlib import Path

import pytest

from featuremap.models import ComponentSummary, FileAnalysis, Stage, UnitFailure
from featuremap.postproc import DocumentAssembler, MarkdownLinter, TableOfContentsBuilder
from featuremap.postproc.document import COMPONENT_HEADING, FILE_HEADING, TITLE


def test_markdown_linter_normalises_whitespace() -> None:
    markdown = "# Title\r\n\r\nText\r\n\r\n\r\n## Section\r\nContent  \r\n"
    linted = MarkdownLinter().lint(markdown)
    assert linted.endswith("\n")
    assert "\r" not in linted
    assert "  \n" not in linted
    assert "\n\n\n" not in linted


def test_markdown_linter_leaves_code_fences_untouched() -> None:
    markdown = "Intro\n```mermaid\ngraph TD\n\n\n# not a heading  \n```\n## After\n"
    linted = MarkdownLinter().lint(markdown)
    assert "graph TD\n\n\n# not a heading  \n```" in linted
    assert "```\n\n## After" in linted


def test_table_of_contents_builder_inserts_placeholder() -> None:
    md = "# Project\n\n<!-- featuremap:toc -->\n\n## Alpha\n\n### Beta\n"
    result = TableOfContentsBuilder().build(md)
    assert "## Table of Contents" in result
    assert "- [Alpha](#alpha)" in result
    assert "  - [Beta](#beta)" in result
    assert "<!-- featuremap:end:toc -->" in result


def test_table_of_contents_builder_slug_matches_github() -> None:
    md = "# Project\n\n<!-- featuremap:toc -->\n\n## Build & Test\n## Build & Test\n"
    result = TableOfContentsBuilder().build(md)
    assert "- [Build & Test](#build--test)" in result
    assert "- [Build & Test](#build--test-1)" in result


def test_table_of_contents_builder_skips_code_and_replaces_existing_block() -> None:
    md = (
        "# Project\n\n"
        "<!-- featuremap:begin:toc -->\n## Table of Contents\n- [Old](#old)\n"
        "<!-- featuremap:end:toc -->\n\n## Alpha\n```\n## Hidden\n```\n"
    )
    result = TableOfContentsBuilder().build(md)
    assert result.count("## Table of Contents") == 1
    assert "- [Old](#old)" not in result
    assert "- [Alpha](#alpha)" in result
    assert "Hidden](#" not in result


def _sample_layers() -> tuple[list[ComponentSummary], list[FileAnalysis]]:
    components = [
        ComponentSummary(dir="lib", summary="Library component."),
        ComponentSummary(dir="src", summary="Source component."),
    ]
    files = [
        FileAnalysis.create("lib/c.py", "- C feature"),
        FileAnalysis.create("src/a.js", "- A feature"),
        FileAnalysis.create("src/b.js", "- B feature"),
    ]
    return components, files


def test_document_assembler_orders_layers() -> None:
    components, files = _sample_layers()

    markdown = DocumentAssembler().render("## Executive Summary\nIt maps code.", components, files)

    assert markdown.startswith(TITLE + "\n")
    positions = [
        markdown.index("## Table of Contents"),
        markdown.index("## Executive Summary\nIt maps code."),
        markdown.index(COMPONENT_HEADING),
        markdown.index(FILE_HEADING),
    ]
    assert positions == sorted(positions)
    assert markdown.count("### Directory: `") == 2
    assert markdown.count("#### `") == 3
    assert "### Directory: `lib`\nLibrary component." in markdown
    assert "#### `src/b.js`\n- B feature" in markdown
    assert "Partial result" not in markdown


def test_document_assembler_without_toc() -> None:
    components, files = _sample_layers()
    markdown = DocumentAssembler(toc=False).render("Global", components, files)
    assert "Table of Contents" not in markdown
    assert "featuremap:toc" not in markdown


def test_document_assembler_adds_partial_notice() -> None:
    components, files = _sample_layers()
    failures = [
        UnitFailure(stage=Stage.FILE, key="src/d.js", error="boom"),
        UnitFailure(stage=Stage.COMPONENT, key="docs", error="boom"),
    ]

    markdown = DocumentAssembler().render("Global", components, files, failures)

    assert "**Partial result:**" in markdown
    assert "Files: `src/d.js`" in markdown
    assert "Components: `docs`" in markdown
    assert markdown.index("Partial result") < markdown.index("Global")


@pytest.mark.asyncio
async def test_document_assembler_writes_file(tmp_path: Path) -> None:
    target = tmp_path / "out" / "repo-features.md"
    written = await DocumentAssembler().write(target, "# Doc\n")
    assert written == target
    assert target.read_text(encoding="utf-8") == "# Doc\n"
