"""Resumable on-disk record of completed pipeline units."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Mapping, Optional
from uuid import uuid4

import aiofiles
import aiofiles.os

from ..logging import get_logger
from ..models import GLOBAL_UNIT_KEY, FileAnalysis, Stage

_CACHE_VERSION = 1

logger = get_logger("stores.cache")


@dataclass
class CacheRecord:
    """Completed units keyed per stage.

    A key present here is done for good: it is never recomputed until the
    cache is cleared.
    """

    file_analyses: Dict[str, FileAnalysis] = field(default_factory=dict)
    component_summaries: Dict[str, str] = field(default_factory=dict)
    global_architecture: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": _CACHE_VERSION,
            "fileAnalyses": {
                path: analysis.to_dict() for path, analysis in self.file_analyses.items()
            },
            "componentSummaries": dict(self.component_summaries),
            "globalArchitecture": self.global_architecture,
        }

    @classmethod
    def from_dict(cls, data: object) -> "CacheRecord":
        """Build a record, dropping entries that are not well formed.

        Records written without a ``version`` field are accepted as version 1.
        """
        if not isinstance(data, Mapping):
            return cls()
        version = data.get("version", _CACHE_VERSION)
        if version != _CACHE_VERSION:
            logger.warning("Ignoring cache written by unsupported version %r", version)
            return cls()

        record = cls()
        files = data.get("fileAnalyses")
        if isinstance(files, Mapping):
            for path, payload in files.items():
                analysis = FileAnalysis.from_dict(payload)
                if isinstance(path, str) and analysis is not None and analysis.path == path:
                    record.file_analyses[path] = analysis
        components = data.get("componentSummaries")
        if isinstance(components, Mapping):
            for directory, summary in components.items():
                if isinstance(directory, str) and isinstance(summary, str) and summary:
                    record.component_summaries[directory] = summary
        global_text = data.get("globalArchitecture")
        if isinstance(global_text, str) and global_text:
            record.global_architecture = global_text
        return record

    def lookup(self, stage: Stage, key: str) -> Any:
        if stage is Stage.FILE:
            return self.file_analyses.get(key)
        if stage is Stage.COMPONENT:
            return self.component_summaries.get(key)
        if stage is Stage.GLOBAL:
            return self.global_architecture if key == GLOBAL_UNIT_KEY else None
        raise ValueError(f"Stage {stage.value} is not cached")

    def merge(self, stage: Stage, key: str, value: Any) -> None:
        if stage is Stage.FILE:
            if not isinstance(value, FileAnalysis) or value.path != key:
                raise TypeError(f"Expected FileAnalysis for {key}")
            self.file_analyses[key] = value
        elif stage is Stage.COMPONENT:
            if not isinstance(value, str):
                raise TypeError(f"Expected summary text for {key}")
            self.component_summaries[key] = value
        elif stage is Stage.GLOBAL:
            if key != GLOBAL_UNIT_KEY or not isinstance(value, str):
                raise TypeError("Expected global architecture text")
            self.global_architecture = value
        else:
            raise ValueError(f"Stage {stage.value} is not cached")

    @property
    def is_empty(self) -> bool:
        return not (
            self.file_analyses or self.component_summaries or self.global_architecture
        )


class CacheEntry:
    """Slot handed to one unit inside :meth:`AnalysisCache.unit`."""

    def __init__(self, stage: Stage, key: str) -> None:
        self.stage = stage
        self.key = key
        self._value: Any = None
        self._is_set = False

    def set(self, value: Any) -> None:
        self._value = value
        self._is_set = True

    def discard(self) -> None:
        self._value = None
        self._is_set = False

    @property
    def is_set(self) -> bool:
        return self._is_set

    @property
    def value(self) -> Any:
        return self._value


class AnalysisCache:
    """Persists completed units so an interrupted run can resume.

    Each unit records its result through :meth:`unit`; the record is flushed
    to disk as soon as the unit completes. Flushes are serialized and always
    write the current in-memory record, so a later flush never rolls back an
    earlier one.
    """

    def __init__(self, path: Path | None, record: CacheRecord | None = None) -> None:
        self.path = path
        self.record = record or CacheRecord()
        self._lock = asyncio.Lock()
        self.flush_count = 0

    @classmethod
    async def open(cls, path: Path | None, *, clear: bool = False) -> "AnalysisCache":
        if path is None:
            return cls(None)
        if clear:
            logger.info("Clearing cache at %s; starting fresh", path)
            cache = cls(path)
            await cache.flush()
            return cache
        record = await _read_record(path)
        if record is None:
            return cls(path)
        logger.info(
            "Loaded existing cache from %s (%d files, %d components)",
            path,
            len(record.file_analyses),
            len(record.component_summaries),
        )
        return cls(path, record)

    def lookup(self, stage: Stage, key: str) -> Any:
        return self.record.lookup(stage, key)

    def file_analysis(self, path: str) -> Optional[FileAnalysis]:
        return self.record.file_analyses.get(path)

    def component_summary(self, directory: str) -> Optional[str]:
        return self.record.component_summaries.get(directory)

    def global_architecture(self) -> Optional[str]:
        return self.record.global_architecture

    @asynccontextmanager
    async def unit(self, stage: Stage, key: str) -> AsyncIterator[CacheEntry]:
        """Scope one unit's work; a value set on the entry is merged and flushed on exit.

        If the body raises, nothing is recorded and the error propagates.
        """
        entry = CacheEntry(stage, key)
        yield entry
        if entry.is_set:
            self.record.merge(stage, key, entry.value)
            await self.flush()

    async def flush(self) -> None:
        if self.path is None:
            return
        async with self._lock:
            payload = json.dumps(self.record.to_dict(), indent=2, sort_keys=True)
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            tmp_path = self.path.with_name(f".{self.path.name}.{uuid4().hex}.tmp")
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as handle:
                await handle.write(payload)
            await aiofiles.os.replace(tmp_path, self.path)
            self.flush_count += 1


async def _read_record(path: Path) -> Optional[CacheRecord]:
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as handle:
            text = await handle.read()
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Could not read cache %s: %s; starting fresh", path, exc)
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("Cache %s is not valid JSON (%s); starting fresh", path, exc)
        return None
    return CacheRecord.from_dict(data)


__all__ = ["AnalysisCache", "CacheEntry", "CacheRecord"]
