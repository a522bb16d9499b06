"""Tests for stage prompt rendering."""

from __future__ import annotations

import json

from featuremap.models import ComponentSummary, FileAnalysis, Stage, StructuralFootprint
from featuremap.prompting import PromptBuilder
from featuremap.prompting.constants import MERMAID_RULE


def test_prefilter_prompt_lists_chunk_paths_as_json() -> None:
    prompt = PromptBuilder().prefilter_prompt(["src/a.js", "lib/c.py"], chunk_index=1, chunk_count=3)

    assert "Chunk 2 of 3" in prompt
    body = prompt.split("Chunk 2 of 3):", 1)[1]
    assert json.loads(body) == ["src/a.js", "lib/c.py"]


def test_file_prompt_embeds_sorted_footprint_and_tool_name() -> None:
    footprint = StructuralFootprint.create(
        "src/a.js", classes=["Zeta", "Alpha"], functions=["run"], imports=["fs"]
    )

    prompt = PromptBuilder().file_prompt(footprint)

    assert "'view_file' tool" in prompt
    payload = json.loads(prompt.split("Structural Data:", 1)[1])
    assert payload["classes"] == ["Alpha", "Zeta"]
    assert payload["path"] == "src/a.js"
    assert "note" not in payload


def test_file_prompt_includes_unparsed_note() -> None:
    prompt = PromptBuilder().file_prompt(StructuralFootprint.unparsed("Makefile"))

    assert "You MUST use view_file" in prompt


def test_component_prompt_lists_files_and_omissions() -> None:
    analyses = [
        FileAnalysis.create("src/a.js", "- A features"),
        FileAnalysis.create("src/b.js", "- B features"),
    ]

    prompt = PromptBuilder().component_prompt("src", analyses, omitted=["src/c.js"])

    assert "`src`" in prompt
    assert "### File: src/a.js\n- A features" in prompt
    assert "### File: src/b.js\n- B features" in prompt
    assert "src/c.js" in prompt
    assert MERMAID_RULE in prompt


def test_global_prompt_mentions_only_omitted_components_when_present() -> None:
    builder = PromptBuilder()
    components = [ComponentSummary(dir="lib", summary="Lib"), ComponentSummary(dir="src", summary="Src")]

    complete = builder.global_prompt(components)
    partial = builder.global_prompt(components, omitted=["docs"])

    assert "### Component: lib\nLib" in complete
    assert "could not be analyzed" not in complete
    assert "docs" in partial and "could not be analyzed" in partial


def test_system_prompts_exist_for_every_stage() -> None:
    builder = PromptBuilder()
    for stage in Stage:
        assert builder.system_prompt(stage)
