"""Document assembly and markdown post-processing."""

from .document import DocumentAssembler, partial_notice
from .lint import MarkdownLinter
from .toc import TableOfContentsBuilder

__all__ = ["DocumentAssembler", "MarkdownLinter", "TableOfContentsBuilder", "partial_notice"]
