"""Tests for the FastAPI service mode."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from featuremap.config import CredentialsError
from featuremap.models import PipelineContext, Stage
from featuremap.orchestrator import EmptyRepositoryError, RunOutcome
from featuremap.service import create_app


class _StubOrchestrator:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[dict[str, object]] = []

    async def run_async(self, path: str, *, prefilter: bool = False, clear_cache: bool = False) -> RunOutcome:
        self.calls.append({"path": path, "prefilter": prefilter, "clear_cache": clear_cache})
        if self.error is not None:
            raise self.error
        context = PipelineContext(root=Path(path))
        context.publish("file_analyses", [])
        context.publish("component_summaries", [])
        context.record_failure(Stage.COMPONENT, "docs", "boom")
        return RunOutcome(document_path=Path(path) / "map.md", markdown="# Map\n", context=context)


def _client(orchestrator: _StubOrchestrator) -> TestClient:
    return TestClient(create_app(lambda: orchestrator))


def test_health_endpoint() -> None:
    response = _client(_StubOrchestrator()).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_map_endpoint_returns_outcome(tmp_path: Path) -> None:
    orchestrator = _StubOrchestrator()

    response = _client(orchestrator).post(
        "/map", json={"path": str(tmp_path), "prefilter": True}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["document_path"].endswith("map.md")
    assert data["files_analyzed"] == 0
    assert data["partial"] is True
    assert data["failures"] == [{"stage": "component", "key": "docs", "error": "boom"}]
    assert orchestrator.calls == [
        {"path": str(tmp_path), "prefilter": True, "clear_cache": False}
    ]


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (FileNotFoundError("Repository path not found: /nope"), 404),
        (CredentialsError("Missing ANTHROPIC_API_KEY"), 400),
        (EmptyRepositoryError("No valid files found"), 400),
    ],
)
def test_map_endpoint_maps_errors(error: Exception, status: int) -> None:
    response = _client(_StubOrchestrator(error)).post("/map", json={"path": "/nope"})

    assert response.status_code == status
    assert response.json()["detail"] == str(error)
