"""Pipeline orchestration: pre-filter, file, component and global stages."""

from __future__ import annotations

import asyncio
import json
import os
import re
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from .analyzers import StructuralExtractor, TreeSitterExtractor
from .config import FeatureMapConfig, StageSettings, load_config, resolve_credentials
from .llm import (
    MalformedResponseError,
    ModelRequest,
    ModelResponse,
    ReasoningClient,
    RetryPolicy,
    TextResponse,
    user_message,
)
from .logging import get_logger
from .models import (
    GLOBAL_UNIT_KEY,
    ComponentSummary,
    FileAnalysis,
    PipelineContext,
    Stage,
    StructuralFootprint,
    UnitFailure,
    WorkUnit,
    directory_for,
)
from .pipeline import LOOP_EXHAUSTED_MESSAGE, FileFeatureExtractor, bounded_map
from .postproc import DocumentAssembler
from .progress import LoggingReporter, StageReporter
from .prompting import PromptBuilder
from .repo_scanner import RepoScanner
from .stores import AnalysisCache

_FENCE_PREFIX = re.compile(r"^\s*```(?:json)?", re.IGNORECASE)
_FENCE_SUFFIX = re.compile(r"```\s*$")


class PipelineError(RuntimeError):
    """Raised when a stage cannot produce any usable output."""


class EmptyRepositoryError(PipelineError):
    """Raised when the inventory contains no files to analyse."""


class IncompleteAnalysisError(PipelineError):
    """Recorded for a file whose analysis is shown in the map but not trusted enough to cache."""


@dataclass
class RunOutcome:
    """Result of one pipeline run."""

    document_path: Path
    markdown: str
    context: PipelineContext

    @property
    def files_analyzed(self) -> int:
        return len(self.context.file_analyses or [])

    @property
    def components(self) -> int:
        return len(self.context.component_summaries or [])

    @property
    def partial(self) -> bool:
        return self.context.is_partial

    @property
    def failures(self) -> List[UnitFailure]:
        return list(self.context.failures)


class Orchestrator:
    """Runs the layered analysis of one repository.

    Collaborators are injectable; anything left out is built from the
    repository's configuration when a run starts.
    """

    def __init__(
        self,
        config: FeatureMapConfig | None = None,
        *,
        scanner: RepoScanner | None = None,
        extractor: StructuralExtractor | None = None,
        client: ReasoningClient | None = None,
        prompt_builder: PromptBuilder | None = None,
        assembler: DocumentAssembler | None = None,
        reporter: StageReporter | None = None,
        environ: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        retry_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.scanner = scanner
        self.extractor = extractor or TreeSitterExtractor()
        self.client = client
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.assembler = assembler
        self.reporter = reporter or LoggingReporter()
        self.environ = environ
        self.cwd = cwd
        self.retry_sleep = retry_sleep
        self.logger = get_logger("orchestrator")

    # ------------------------------------------------------------------
    # Entry points

    def discover(self, path: str | Path) -> List[Path]:
        """Return the files a run over ``path`` would analyse."""
        repo_path = Path(path).expanduser().resolve()
        config = self._config_for(repo_path)
        scanner = self.scanner or RepoScanner(
            extensions=config.scan.extensions,
            filenames=config.scan.filenames,
            exclude_paths=config.scan.exclude_paths,
        )
        cwd = self._cwd()
        skip = [config.document_path(cwd), config.cache_path(cwd)]
        return scanner.scan(repo_path, skip=skip)

    def run(self, path: str | Path, **options: object) -> RunOutcome:
        return asyncio.run(self.run_async(path, **options))  # type: ignore[arg-type]

    async def run_async(
        self,
        path: str | Path,
        *,
        files: Optional[Sequence[Path]] = None,
        prefilter: bool = False,
        clear_cache: bool = False,
    ) -> RunOutcome:
        repo_path = Path(path).expanduser().resolve()
        config = await asyncio.to_thread(self._config_for, repo_path)
        self.logger.info("Scanning repository: %s", repo_path)
        if files is not None:
            inventory = list(files)
        else:
            inventory = await asyncio.to_thread(self.discover, repo_path)
        if not inventory:
            raise EmptyRepositoryError(f"No valid files found to analyze in {repo_path}")
        self.logger.info("Found %d source files to analyze.", len(inventory))

        client = self._resolve_client(config)
        cwd = self._cwd()
        cache = await AnalysisCache.open(config.cache_path(cwd), clear=clear_cache)
        context = PipelineContext(root=repo_path)

        if prefilter:
            selected = await self._run_prefilter(repo_path, inventory, config, client)
        else:
            selected = inventory
        context.publish("files", selected)
        footprints = await asyncio.to_thread(self._extract_footprints, repo_path, selected)
        context.publish("footprints", footprints)

        await self._run_file_stage(context, config, client, cache)
        await self._run_component_stage(context, config, client, cache)
        await self._run_global_stage(context, config, client, cache)

        assembler = self.assembler or DocumentAssembler(toc=config.output.toc)
        markdown = assembler.render(
            context.require("global_architecture"),
            context.require("component_summaries"),
            context.require("file_analyses"),
            context.failures,
        )
        document_path = await assembler.write(config.document_path(cwd), markdown)
        if context.is_partial:
            self.logger.warning(
                "Codebase mapping finished with %d failed unit(s); saved partial map to %s",
                len(context.failures),
                document_path,
            )
        else:
            self.logger.info("Codebase mapping complete! Saved to %s", document_path)
        return RunOutcome(document_path=document_path, markdown=markdown, context=context)

    # ------------------------------------------------------------------
    # Stages

    async def _run_prefilter(
        self,
        repo_path: Path,
        files: Sequence[Path],
        config: FeatureMapConfig,
        client: ReasoningClient,
    ) -> List[Path]:
        size = config.pipeline.prefilter_chunk_size
        chunks = [list(files[start : start + size]) for start in range(0, len(files), size)]
        settings = config.stage(Stage.PREFILTER)
        policy = self._policy(settings, retry_malformed=True)
        self.reporter.stage_started(Stage.PREFILTER, len(chunks))

        async def filter_chunk(chunk: List[Path], index: int) -> List[Path]:
            relative = [_relative(repo_path, file) for file in chunk]
            request = ModelRequest(
                messages=(
                    user_message(
                        self.prompt_builder.prefilter_prompt(
                            relative, chunk_index=index, chunk_count=len(chunks)
                        )
                    ),
                ),
                system=self.prompt_builder.system_prompt(Stage.PREFILTER),
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
            )

            async def attempt() -> List[Path]:
                kept = parse_kept_paths(await client.complete(request), repo_path)
                return [file for file, rel in zip(chunk, relative) if rel in kept]

            def keep_all(exc: Exception) -> List[Path]:
                self.logger.warning(
                    "Pre-filtering failed for chunk %d, falling back to all files in chunk.",
                    index + 1,
                )
                return list(chunk)

            result = await policy.call(
                attempt,
                label=f"Pre-filter chunk {index + 1}/{len(chunks)}",
                fallback=keep_all,
            )
            self.reporter.unit_finished(Stage.PREFILTER, f"chunk-{index + 1}")
            return result

        results = await bounded_map(chunks, filter_chunk, config.pipeline.concurrency)
        kept = [file for chunk_result in results for file in chunk_result]
        self.reporter.stage_finished(
            Stage.PREFILTER, f"removed {len(files) - len(kept)} trivial files"
        )
        return kept

    def _extract_footprints(
        self, repo_path: Path, files: Sequence[Path]
    ) -> List[StructuralFootprint]:
        footprints: List[StructuralFootprint] = []
        for file in files:
            rel_path = _relative(repo_path, file)
            footprint = self.extractor.extract(file, rel_path)
            if footprint is None or footprint.is_empty:
                footprint = StructuralFootprint.unparsed(rel_path)
            footprints.append(footprint)
        if not footprints:
            raise PipelineError("No valid structural data found.")
        return footprints

    async def _run_file_stage(
        self,
        context: PipelineContext,
        config: FeatureMapConfig,
        client: ReasoningClient,
        cache: AnalysisCache,
    ) -> None:
        settings = config.stage(Stage.FILE)
        extractor = FileFeatureExtractor(
            client,
            self.prompt_builder,
            context.root,
            policy=self._policy(settings),
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            max_turns=config.pipeline.max_agent_turns,
        )
        units = [
            WorkUnit(Stage.FILE, footprint.path, footprint)
            for footprint in context.require("footprints")
        ]
        self.reporter.stage_started(Stage.FILE, len(units))

        async def analyze(unit: WorkUnit, index: int) -> Optional[FileAnalysis]:
            cached = cache.file_analysis(unit.key)
            if cached is not None:
                self.reporter.unit_finished(Stage.FILE, unit.key, cached=True)
                return cached
            try:
                async with cache.unit(Stage.FILE, unit.key) as entry:
                    features = await extractor.extract(unit.payload)
                    analysis = FileAnalysis.create(unit.key, features)
                    if _is_settled(analysis):
                        entry.set(analysis)
            except Exception as exc:
                self._record_failure(context, unit, exc)
                return None
            if not _is_settled(analysis):
                reason = analysis.features or "Reasoning service returned no features"
                self._record_failure(context, unit, IncompleteAnalysisError(reason))
                return analysis
            self.reporter.unit_finished(Stage.FILE, unit.key)
            return analysis

        results = await bounded_map(units, analyze, config.pipeline.concurrency)
        analyses = [analysis for analysis in results if analysis is not None]
        self.reporter.stage_finished(Stage.FILE)
        if not analyses:
            raise PipelineError("Stage 1 produced no file analyses; nothing to synthesize.")
        context.publish("file_analyses", analyses)

    async def _run_component_stage(
        self,
        context: PipelineContext,
        config: FeatureMapConfig,
        client: ReasoningClient,
        cache: AnalysisCache,
    ) -> None:
        settings = config.stage(Stage.COMPONENT)
        policy = self._policy(settings)
        groups: Dict[str, List[FileAnalysis]] = OrderedDict()
        for analysis in context.require("file_analyses"):
            groups.setdefault(analysis.dir, []).append(analysis)
        failed_files = _group_failed_files(context.failures_for(Stage.FILE))
        units = [
            WorkUnit(Stage.COMPONENT, directory, groups[directory])
            for directory in sorted(groups)
        ]
        self.reporter.stage_started(Stage.COMPONENT, len(units))

        async def synthesize(unit: WorkUnit, index: int) -> Optional[ComponentSummary]:
            cached = cache.component_summary(unit.key)
            if cached is not None:
                self.reporter.unit_finished(Stage.COMPONENT, unit.key, cached=True)
                return ComponentSummary(dir=unit.key, summary=cached)
            analysed = {analysis.path for analysis in unit.payload}
            omitted = [key for key in failed_files.get(unit.key, []) if key not in analysed]
            try:
                request = ModelRequest(
                    messages=(
                        user_message(
                            self.prompt_builder.component_prompt(
                                unit.key, unit.payload, omitted=omitted
                            )
                        ),
                    ),
                    system=self.prompt_builder.system_prompt(Stage.COMPONENT),
                    max_tokens=settings.max_tokens,
                    temperature=settings.temperature,
                )
                async with cache.unit(Stage.COMPONENT, unit.key) as entry:
                    summary = await policy.call(
                        lambda: self._complete_text(client, request),
                        label=f"Component: {unit.key}",
                    )
                    if not omitted and _all_settled(unit.payload):
                        entry.set(summary)
            except Exception as exc:
                self._record_failure(context, unit, exc)
                return None
            self.reporter.unit_finished(Stage.COMPONENT, unit.key)
            return ComponentSummary(dir=unit.key, summary=summary)

        results = await bounded_map(units, synthesize, config.pipeline.concurrency)
        summaries = [summary for summary in results if summary is not None]
        self.reporter.stage_finished(Stage.COMPONENT)
        if not summaries:
            raise PipelineError("Stage 2 produced no component summaries.")
        context.publish("component_summaries", summaries)

    async def _run_global_stage(
        self,
        context: PipelineContext,
        config: FeatureMapConfig,
        client: ReasoningClient,
        cache: AnalysisCache,
    ) -> None:
        self.reporter.stage_started(Stage.GLOBAL, 1)
        cached = cache.global_architecture()
        if cached is not None:
            self.reporter.unit_finished(Stage.GLOBAL, GLOBAL_UNIT_KEY, cached=True)
            self.reporter.stage_finished(Stage.GLOBAL)
            context.publish("global_architecture", cached)
            return

        settings = config.stage(Stage.GLOBAL)
        policy = self._policy(settings)
        components = context.require("component_summaries")
        omitted = _omitted_components(context)
        request = ModelRequest(
            messages=(
                user_message(self.prompt_builder.global_prompt(components, omitted=omitted)),
            ),
            system=self.prompt_builder.system_prompt(Stage.GLOBAL),
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )
        try:
            async with cache.unit(Stage.GLOBAL, GLOBAL_UNIT_KEY) as entry:
                architecture = await policy.call(
                    lambda: self._complete_text(client, request),
                    label="Global Architecture",
                )
                if not context.is_partial and _all_settled(context.require("file_analyses")):
                    entry.set(architecture)
        except Exception as exc:
            self.reporter.unit_failed(Stage.GLOBAL, GLOBAL_UNIT_KEY, exc)
            raise PipelineError(f"Global architecture synthesis failed: {exc}") from exc
        self.reporter.unit_finished(Stage.GLOBAL, GLOBAL_UNIT_KEY)
        self.reporter.stage_finished(Stage.GLOBAL)
        context.publish("global_architecture", architecture)

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    async def _complete_text(client: ReasoningClient, request: ModelRequest) -> str:
        response = await client.complete(request)
        if not isinstance(response, TextResponse) or not response.text.strip():
            raise MalformedResponseError("Reasoning service returned no text")
        return response.text

    def _policy(self, settings: StageSettings, *, retry_malformed: bool = False) -> RetryPolicy:
        return RetryPolicy(
            max_retries=settings.max_retries,
            retry_malformed=retry_malformed,
            sleep=self.retry_sleep,
        )

    def _record_failure(self, context: PipelineContext, unit: WorkUnit, exc: Exception) -> None:
        context.record_failure(unit.stage, unit.key, exc)
        self.reporter.unit_failed(unit.stage, unit.key, exc)

    def _config_for(self, repo_path: Path) -> FeatureMapConfig:
        if self.config is None or self.config.root != repo_path:
            self.config = load_config(repo_path, environ=self.environ)
        return self.config

    def _resolve_client(self, config: FeatureMapConfig) -> ReasoningClient:
        if self.client is None:
            credentials = resolve_credentials(self.environ)
            self.client = ReasoningClient.from_config(config.llm, credentials)
        return self.client

    def _cwd(self) -> Path:
        return self.cwd or Path.cwd()


def parse_kept_paths(response: ModelResponse, repo_path: Path) -> set[str]:
    """Parse a pre-filter reply into the set of repository-relative paths to keep.

    Returned paths may be relative to ``repo_path`` or absolute; paths that
    resolve outside the repository are ignored.
    """
    if not isinstance(response, TextResponse):
        raise MalformedResponseError("Pre-filter reply did not contain text")
    text = _FENCE_SUFFIX.sub("", _FENCE_PREFIX.sub("", response.text or "[]")).strip()
    kept = json.loads(text or "[]")
    if not isinstance(kept, list):
        raise MalformedResponseError("Pre-filter reply was not a JSON array")
    selected: set[str] = set()
    for item in kept:
        if not isinstance(item, str) or not item.strip():
            continue
        candidate = Path(os.path.normpath(repo_path / item.strip()))
        try:
            selected.add(candidate.relative_to(repo_path).as_posix())
        except ValueError:
            continue
    return selected


def _is_settled(analysis: FileAnalysis) -> bool:
    """Whether a file result is final enough to persist and build on."""
    return bool(analysis.features) and analysis.features != LOOP_EXHAUSTED_MESSAGE


def _all_settled(analyses: Sequence[FileAnalysis]) -> bool:
    return all(_is_settled(analysis) for analysis in analyses)


def _relative(repo_path: Path, file: Path) -> str:
    path = Path(file)
    if path.is_absolute():
        return path.relative_to(repo_path).as_posix()
    return path.as_posix()


def _group_failed_files(failures: Sequence[UnitFailure]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for failure in failures:
        grouped.setdefault(directory_for(failure.key), []).append(failure.key)
    for keys in grouped.values():
        keys.sort()
    return grouped


def _omitted_components(context: PipelineContext) -> List[str]:
    omitted = {failure.key for failure in context.failures_for(Stage.COMPONENT)}
    present = {analysis.dir for analysis in context.file_analyses or []}
    for failure in context.failures_for(Stage.FILE):
        directory = directory_for(failure.key)
        if directory not in present:
            omitted.add(directory)
    return sorted(omitted)


__all__ = [
    "EmptyRepositoryError",
    "IncompleteAnalysisError",
    "Orchestrator",
    "PipelineError",
    "RunOutcome",
    "parse_kept_paths",
]
