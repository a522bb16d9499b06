"""Tree-sitter powered structural extractor."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from tree_sitter_language_pack import get_parser

from .base import StructuralExtractor
from ..logging import get_logger
from ..models import StructuralFootprint


_LANGUAGE_BY_SUFFIX: Dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".swift": "swift",
    ".sh": "bash",
    ".bash": "bash",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".html": "html",
    ".css": "css",
    ".sql": "sql",
}


def _is_class_node(node_type: str) -> bool:
    return "class" in node_type or "struct" in node_type or "interface" in node_type


def _is_function_node(node_type: str) -> bool:
    return (
        "function" in node_type
        or "method" in node_type
        or "def_" in node_type
        or node_type == "func_literal"
    )


def _is_export_node(node_type: str) -> bool:
    return "export" in node_type


def _is_import_node(node_type: str) -> bool:
    return "import" in node_type or "use_" in node_type or "include" in node_type


class TreeSitterExtractor(StructuralExtractor):
    """Collects class, function, export and import names with generic node heuristics."""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self._parsers: Dict[str, Any] = {}
        self._unavailable: Set[str] = set()
        self.logger = get_logger("analyzers.tree_sitter")

    def supports(self, path: Path) -> bool:
        if not self._enabled:
            return False
        language = _LANGUAGE_BY_SUFFIX.get(path.suffix.lower())
        return language is not None and language not in self._unavailable

    def extract(self, path: Path, rel_path: str) -> Optional[StructuralFootprint]:
        if not self.supports(path):
            return None
        language = _LANGUAGE_BY_SUFFIX[path.suffix.lower()]
        parser = self._get_parser(language)
        if parser is None:
            return None
        try:
            source_bytes = path.read_bytes()
        except OSError as exc:
            self.logger.error("Error parsing %s: %s", rel_path, exc)
            return None

        try:
            tree = parser.parse(source_bytes)
        except Exception as exc:  # pragma: no cover - parser crash depends on grammar
            self.logger.error("Error parsing %s: %s", rel_path, exc)
            return None

        collected: Dict[str, List[str]] = {
            "classes": [],
            "functions": [],
            "exports": [],
            "imports": [],
        }
        self._collect(tree.root_node, source_bytes, collected)
        return StructuralFootprint.create(rel_path, **collected)

    def _get_parser(self, language: str) -> Any:
        parser = self._parsers.get(language)
        if parser is not None:
            return parser
        if language in self._unavailable:
            return None
        try:
            parser = get_parser(language)  # type: ignore[arg-type]
        except Exception as exc:  # pragma: no cover - grammar availability varies
            # Without a grammar the reasoning service reads the raw source instead.
            self.logger.debug("No tree-sitter grammar for %s: %s", language, exc)
            self._unavailable.add(language)
            return None
        self._parsers[language] = parser
        return parser

    @staticmethod
    def _node_text(node, source_bytes: bytes) -> str:  # type: ignore[no-untyped-def]
        return source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")

    @staticmethod
    def _name_node(node):  # type: ignore[no-untyped-def]
        name_node = node.child_by_field_name("name")
        if name_node is not None:
            return name_node
        for child in node.children:
            if child.type == "identifier":
                return child
        return None

    def _collect(self, root, source_bytes: bytes, collected: Dict[str, List[str]]) -> None:  # type: ignore[no-untyped-def]
        # Iterative pre-order walk; deeply nested sources would overflow recursion.
        stack = [root]
        while stack:
            node = stack.pop()
            node_type = node.type.lower()

            if _is_class_node(node_type):
                name_node = self._name_node(node)
                if name_node is not None:
                    collected["classes"].append(self._node_text(name_node, source_bytes))

            if _is_function_node(node_type):
                name_node = self._name_node(node)
                if name_node is not None:
                    name = self._node_text(name_node, source_bytes)
                    if not name.startswith("__"):
                        collected["functions"].append(name)

            if _is_export_node(node_type):
                declaration = node.child_by_field_name("declaration")
                declared_name = (
                    declaration.child_by_field_name("name") if declaration is not None else None
                )
                if declared_name is not None:
                    collected["exports"].append(self._node_text(declared_name, source_bytes))
                else:
                    for child in node.children:
                        if child.type == "identifier":
                            collected["exports"].append(self._node_text(child, source_bytes))
                            break

            if _is_import_node(node_type):
                source = node.child_by_field_name("source") or node.child_by_field_name(
                    "module_name"
                )
                if source is not None:
                    collected["imports"].append(self._node_text(source, source_bytes))
                else:
                    for child in node.children:
                        if "string" in child.type:
                            collected["imports"].append(self._node_text(child, source_bytes))
                            break

            stack.extend(reversed(node.named_children))


__all__ = ["TreeSitterExtractor"]
