"""Structural extractors that produce per-file footprints."""

from .base import StructuralExtractor
from .tree_sitter import TreeSitterExtractor

__all__ = ["StructuralExtractor", "TreeSitterExtractor"]
