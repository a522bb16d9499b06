"""Stage progress reporting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .logging import get_logger
from .models import Stage

STAGE_TITLES: Dict[Stage, str] = {
    Stage.PREFILTER: "STAGE 0: File pre-filtering",
    Stage.FILE: "STAGE 1: Micro analysis (file level)",
    Stage.COMPONENT: "STAGE 2: Macro analysis (component level)",
    Stage.GLOBAL: "STAGE 3: Global architecture mapping",
}


@dataclass
class StageTally:
    total: int = 0
    cached: int = 0
    fresh: int = 0
    failed: int = 0

    @property
    def done(self) -> int:
        return self.cached + self.fresh + self.failed

    def describe(self) -> str:
        return f"{self.fresh} fresh, {self.cached} cached, {self.failed} failed"


class StageReporter:
    """Receives stage and unit events from the orchestrator. Ignores them by default."""

    def stage_started(self, stage: Stage, total: int) -> None:
        pass

    def unit_finished(self, stage: Stage, key: str, *, cached: bool = False) -> None:
        pass

    def unit_failed(self, stage: Stage, key: str, error: BaseException) -> None:
        pass

    def stage_finished(self, stage: Stage, message: Optional[str] = None) -> None:
        pass


class LoggingReporter(StageReporter):
    """Writes progress to the featuremap logger."""

    def __init__(self) -> None:
        self.logger = get_logger("progress")
        self.tallies: Dict[Stage, StageTally] = {}

    def stage_started(self, stage: Stage, total: int) -> None:
        self.tallies[stage] = StageTally(total=total)
        self.logger.info("%s (%d units)", STAGE_TITLES[stage], total)

    def unit_finished(self, stage: Stage, key: str, *, cached: bool = False) -> None:
        tally = self.tallies.setdefault(stage, StageTally())
        if cached:
            tally.cached += 1
        else:
            tally.fresh += 1
        self.logger.debug(
            "[%s] %s %s (%d/%d)",
            stage.value,
            "Reused" if cached else "Completed",
            key,
            tally.done,
            tally.total,
        )

    def unit_failed(self, stage: Stage, key: str, error: BaseException) -> None:
        self.tallies.setdefault(stage, StageTally()).failed += 1
        self.logger.error("[%s] Failed to process %s: %s", stage.value, key, error)

    def stage_finished(self, stage: Stage, message: Optional[str] = None) -> None:
        tally = self.tallies.get(stage, StageTally())
        self.logger.info("%s finished: %s", STAGE_TITLES[stage], message or tally.describe())


class RichProgressReporter(LoggingReporter):
    """Shows one progress bar per stage on the terminal.

    Use as a context manager so the live display is stopped on exit.
    """

    def __init__(self, console: Console | None = None) -> None:
        super().__init__()
        self.console = console or Console(stderr=True)
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("{task.fields[status]}"),
            TimeElapsedColumn(),
            console=self.console,
        )
        self._tasks: Dict[Stage, TaskID] = {}

    def __enter__(self) -> "RichProgressReporter":
        self.progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.progress.stop()

    def stage_started(self, stage: Stage, total: int) -> None:
        self.tallies[stage] = StageTally(total=total)
        self._tasks[stage] = self.progress.add_task(
            STAGE_TITLES[stage], total=max(total, 1), status=""
        )

    def unit_finished(self, stage: Stage, key: str, *, cached: bool = False) -> None:
        super().unit_finished(stage, key, cached=cached)
        self._refresh(stage)

    def unit_failed(self, stage: Stage, key: str, error: BaseException) -> None:
        tally = self.tallies.setdefault(stage, StageTally())
        tally.failed += 1
        self.console.print(f"[red]Failed[/red] {stage.value} {key}: {error}")
        self.logger.debug("[%s] Failed to process %s: %s", stage.value, key, error)
        self._refresh(stage)

    def stage_finished(self, stage: Stage, message: Optional[str] = None) -> None:
        task_id = self._tasks.get(stage)
        tally = self.tallies.get(stage, StageTally())
        if task_id is not None:
            self.progress.update(
                task_id,
                completed=max(tally.total, 1),
                status=message or tally.describe(),
            )

    def _refresh(self, stage: Stage) -> None:
        task_id = self._tasks.get(stage)
        if task_id is None:
            return
        tally = self.tallies[stage]
        self.progress.update(task_id, completed=tally.done, status=tally.describe())


__all__ = [
    "LoggingReporter",
    "RichProgressReporter",
    "STAGE_TITLES",
    "StageReporter",
    "StageTally",
]
