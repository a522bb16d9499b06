"""Whitespace normalisation for generated markdown."""

from __future__ import annotations

from typing import List


class MarkdownLinter:
    """Collapses blank runs, separates headings, and leaves code fences alone."""

    def lint(self, markdown: str) -> str:
        normalized = markdown.replace("\r\n", "\n").replace("\r", "\n")
        cleaned: List[str] = []
        fence: str | None = None

        for line in normalized.split("\n"):
            stripped = line.rstrip()
            marker = stripped.lstrip()[:3]
            if marker in ("```", "~~~"):
                if fence is None:
                    fence = marker
                elif fence == marker:
                    fence = None
                cleaned.append(stripped)
                continue

            if fence is not None:
                cleaned.append(line)
                continue

            if not stripped:
                if cleaned and cleaned[-1] == "":
                    continue
                if cleaned:
                    cleaned.append("")
                continue

            if stripped.startswith("#") and cleaned and cleaned[-1] != "":
                cleaned.append("")
            cleaned.append(stripped)

        while cleaned and cleaned[-1] == "":
            cleaned.pop()

        return "\n".join(cleaned) + "\n"


__all__ = ["MarkdownLinter"]
