"""Core data models shared across featuremap components."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

GLOBAL_UNIT_KEY = "global"

UNPARSED_NOTE = "AST parsing unavailable. You MUST use view_file to extract features."


class Stage(str, Enum):
    """Fixed processing levels of the analysis pipeline, in execution order."""

    PREFILTER = "prefilter"
    FILE = "file"
    COMPONENT = "component"
    GLOBAL = "global"


class PipelineStateError(RuntimeError):
    """Raised when a pipeline context field is written twice or read too early."""


def directory_for(path: str) -> str:
    """Return the grouping directory for a repository-relative POSIX path."""
    parent = posixpath.dirname(path)
    return parent or "."


@dataclass(frozen=True)
class WorkUnit:
    """One schedulable item at a given stage."""

    stage: Stage
    key: str
    payload: Any = None


@dataclass(frozen=True)
class StructuralFootprint:
    """Compact declaration summary of one file."""

    path: str
    classes: FrozenSet[str] = frozenset()
    functions: FrozenSet[str] = frozenset()
    exports: FrozenSet[str] = frozenset()
    imports: FrozenSet[str] = frozenset()
    note: Optional[str] = None

    @classmethod
    def create(
        cls,
        path: str,
        *,
        classes: Iterable[str] = (),
        functions: Iterable[str] = (),
        exports: Iterable[str] = (),
        imports: Iterable[str] = (),
        note: Optional[str] = None,
    ) -> "StructuralFootprint":
        return cls(
            path=path,
            classes=frozenset(classes),
            functions=frozenset(functions),
            exports=frozenset(exports),
            imports=frozenset(imports),
            note=note,
        )

    @classmethod
    def unparsed(cls, path: str) -> "StructuralFootprint":
        """Footprint for files the structural extractor could not handle."""
        return cls(path=path, note=UNPARSED_NOTE)

    @property
    def is_empty(self) -> bool:
        return not (self.classes or self.functions or self.exports)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "path": self.path,
            "classes": sorted(self.classes),
            "functions": sorted(self.functions),
            "exports": sorted(self.exports),
            "imports": sorted(self.imports),
        }
        if self.note:
            payload["note"] = self.note
        return payload


@dataclass(frozen=True)
class FileAnalysis:
    """Stage-one result for a single file."""

    path: str
    dir: str
    features: str

    @classmethod
    def create(cls, path: str, features: str) -> "FileAnalysis":
        return cls(path=path, dir=directory_for(path), features=features)

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "dir": self.dir, "features": self.features}

    @classmethod
    def from_dict(cls, payload: object) -> Optional["FileAnalysis"]:
        if not isinstance(payload, Mapping):
            return None
        path = payload.get("path")
        features = payload.get("features")
        if not isinstance(path, str) or not isinstance(features, str) or not features:
            return None
        return cls.create(path, features)


@dataclass(frozen=True)
class ComponentSummary:
    """Stage-two result for one directory."""

    dir: str
    summary: str


@dataclass(frozen=True)
class UnitFailure:
    """A unit that did not produce a usable result."""

    stage: Stage
    key: str
    error: str


@dataclass
class PipelineContext:
    """In-memory accumulator threaded through the stages of one run.

    Every result field is write-once: it is produced by exactly one stage and
    only read by the stages that follow it.
    """

    root: Path
    files: Optional[List[Path]] = None
    footprints: Optional[List[StructuralFootprint]] = None
    file_analyses: Optional[List[FileAnalysis]] = None
    component_summaries: Optional[List[ComponentSummary]] = None
    global_architecture: Optional[str] = None
    failures: List[UnitFailure] = field(default_factory=list)

    _WRITE_ONCE = (
        "files",
        "footprints",
        "file_analyses",
        "component_summaries",
        "global_architecture",
    )

    def publish(self, name: str, value: Any) -> None:
        if name not in self._WRITE_ONCE:
            raise PipelineStateError(f"Unknown pipeline field: {name}")
        if getattr(self, name) is not None:
            raise PipelineStateError(f"Pipeline field '{name}' was already produced")
        setattr(self, name, value)

    def require(self, name: str) -> Any:
        if name not in self._WRITE_ONCE:
            raise PipelineStateError(f"Unknown pipeline field: {name}")
        value = getattr(self, name)
        if value is None:
            raise PipelineStateError(f"Pipeline field '{name}' has not been produced yet")
        return value

    def record_failure(self, stage: Stage, key: str, error: BaseException | str) -> None:
        self.failures.append(UnitFailure(stage=stage, key=key, error=str(error)))

    def failures_for(self, stage: Stage) -> List[UnitFailure]:
        return [failure for failure in self.failures if failure.stage is stage]

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)


__all__ = [
    "ComponentSummary",
    "FileAnalysis",
    "GLOBAL_UNIT_KEY",
    "PipelineContext",
    "PipelineStateError",
    "Stage",
    "StructuralFootprint",
    "UNPARSED_NOTE",
    "UnitFailure",
    "WorkUnit",
    "directory_for",
]
