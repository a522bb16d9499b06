"""Table-of-contents generation for the feature map."""

from __future__ import annotations

import re
from typing import List, Tuple

BEGIN_MARKER = "<!-- featuremap:begin:toc -->"
END_MARKER = "<!-- featuremap:end:toc -->"


class TableOfContentsBuilder:
    """Lists level two and three headings, ignoring fenced code."""

    PLACEHOLDER = "<!-- featuremap:toc -->"

    def build(self, markdown: str) -> str:
        toc_block = self._build_block(markdown)
        if not toc_block:
            return markdown.replace(self.PLACEHOLDER, "", 1)
        if BEGIN_MARKER in markdown and END_MARKER in markdown:
            pre, rest = markdown.split(BEGIN_MARKER, 1)
            _, post = rest.split(END_MARKER, 1)
            return f"{pre}{toc_block}{post}"
        if self.PLACEHOLDER in markdown:
            return markdown.replace(self.PLACEHOLDER, toc_block, 1)
        return toc_block + "\n" + markdown

    def headings(self, markdown: str) -> List[Tuple[int, str, str]]:
        found: List[Tuple[int, str, str]] = []
        seen: dict[str, int] = {}
        in_code = False
        in_toc = False
        for line in markdown.splitlines():
            stripped = line.strip()
            if stripped == BEGIN_MARKER:
                in_toc = True
                continue
            if stripped == END_MARKER:
                in_toc = False
                continue
            if stripped.startswith("```"):
                in_code = not in_code
                continue
            if in_code or in_toc:
                continue
            match = re.match(r"^(#{2,3})\s+(.*)$", stripped)
            if not match:
                continue
            title = match.group(2).strip()
            anchor = self._slugify(title)
            # Repeated headings get GitHub-style numeric suffixes.
            count = seen.get(anchor, 0)
            seen[anchor] = count + 1
            if count:
                anchor = f"{anchor}-{count}"
            found.append((len(match.group(1)), title, anchor))
        return found

    def _build_block(self, markdown: str) -> str:
        headings = self.headings(markdown)
        if not headings:
            return ""
        output: List[str] = [BEGIN_MARKER, "## Table of Contents"]
        for level, title, anchor in headings:
            indent = "  " * (level - 2)
            output.append(f"{indent}- [{title}](#{anchor})")
        output.append(END_MARKER)
        return "\n".join(output)

    @staticmethod
    def _slugify(title: str) -> str:
        slug = title.lower()
        slug = re.sub(r"[^a-z0-9\s_-]", "", slug)
        slug = re.sub(r"\s", "-", slug)
        return slug.strip("-")


__all__ = ["BEGIN_MARKER", "END_MARKER", "TableOfContentsBuilder"]
