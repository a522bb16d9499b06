"""Base classes for structural extractors."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..models import StructuralFootprint


class StructuralExtractor(ABC):
    """Contract for extractors that summarise a file's declarations."""

    @abstractmethod
    def supports(self, path: Path) -> bool:
        """Return True when this extractor has a parser for ``path``."""

    @abstractmethod
    def extract(self, path: Path, rel_path: str) -> Optional[StructuralFootprint]:
        """Return the footprint for ``path`` or None when it cannot be parsed."""
