"""FastAPI application entrypoint for featuremap service mode."""

from __future__ import annotations

from typing import Any, Callable, List

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import ConfigError
from ..orchestrator import Orchestrator, PipelineError


class MapRequest(BaseModel):
    path: str
    prefilter: bool = False
    clear_cache: bool = False


class FailureModel(BaseModel):
    stage: str
    key: str
    error: str


class MapResponse(BaseModel):
    document_path: str
    files_analyzed: int
    components: int
    partial: bool
    failures: List[FailureModel] = []


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing featuremap operations."""
    app = FastAPI(title="Featuremap Service", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/map", response_model=MapResponse)
    async def map_repo(
        payload: MapRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> MapResponse:
        outcome = await orchestrator.run_async(
            payload.path,
            prefilter=payload.prefilter,
            clear_cache=payload.clear_cache,
        )
        return MapResponse(
            document_path=str(outcome.document_path),
            files_analyzed=outcome.files_analyzed,
            components=outcome.components,
            partial=outcome.partial,
            failures=[
                FailureModel(stage=failure.stage.value, key=failure.key, error=failure.error)
                for failure in outcome.failures
            ],
        )

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NotADirectoryError)
    async def not_a_directory_handler(_: Any, exc: NotADirectoryError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(_: Any, exc: PipelineError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    uvicorn.run(create_app(), host=host, port=port)


__all__ = ["MapRequest", "MapResponse", "create_app", "run_service"]
