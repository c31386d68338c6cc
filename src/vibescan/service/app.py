"""FastAPI application for vibescan service mode.

Endpoints:
- GET  /api/health
- POST /api/validate-repo
- GET  /api/estimate
- POST /api/analyze                    (text/event-stream)
- POST /api/analyze/{run_id}/decision
- GET  /api/history, /api/history/{run_id}

The analyze stream opens with a ``run`` event carrying the run id, then relays
the orchestrator's events as ``data: <json>`` frames. While the run is idle
(for example paused at an approval gate) a ``:heartbeat`` comment is sent
every ``heartbeat_interval`` seconds. A client disconnect cancels the run.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from vibescan import __version__
from vibescan.config import VibescanConfig, load_config
from vibescan.errors import VibescanError
from vibescan.github.cache import FileTreeCache
from vibescan.history import HistoryStore, InMemoryHistoryStore
from vibescan.models.analysis import PriorityTier
from vibescan.models.events import AnalysisEvent
from vibescan.orchestrator import AnalysisOrchestrator, AnalysisRun, create_orchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[str | None], AnalysisOrchestrator]

HEARTBEAT = ":heartbeat\n\n"

STATUS_BY_CODE: dict[str, int] = {
    "INVALID_URL": 400,
    "INVALID_REQUEST": 400,
    "REPO_EMPTY": 400,
    "PRIVATE_REPO": 403,
    "ACCESS_DENIED": 403,
    "REPO_NOT_FOUND": 404,
    "INVALID_DECISION": 409,
    "GITHUB_RATE_LIMITED": 429,
    "RATE_LIMITED": 429,
}


# =============================================================================
# Request / Response Models
# =============================================================================


class ValidateRepoRequest(BaseModel):
    repoUrl: str | None = None


class AnalyzeRequest(BaseModel):
    repoUrl: str = Field(min_length=1)
    apiKey: str = Field(min_length=1)
    priority: int = Field(default=1, ge=1, le=3)


class DecisionRequest(BaseModel):
    tier: int = Field(ge=1, le=3)
    decision: Literal["approve", "stop"]


class DecisionResponse(BaseModel):
    accepted: bool


class DeleteResponse(BaseModel):
    success: bool


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


# =============================================================================
# Helpers
# =============================================================================


def status_for(error: VibescanError) -> int:
    """Map a vibescan error to an HTTP status code (502 for upstream failures)."""
    return STATUS_BY_CODE.get(error.code, 502)


def bearer_token(authorization: str | None = Header(default=None)) -> str | None:
    """Extract the hosting credential from an ``Authorization: Bearer`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def format_sse(event: AnalysisEvent | dict[str, Any]) -> str:
    payload = event.to_json() if isinstance(event, AnalysisEvent) else json.dumps(event)
    return f"data: {payload}\n\n"


async def _next_event(events: AsyncIterator[AnalysisEvent]) -> AnalysisEvent | None:
    try:
        return await anext(events)
    except StopAsyncIteration:
        return None


async def stream_run(
    run: AnalysisRun,
    heartbeat_interval: float,
) -> AsyncIterator[str]:
    """Relay a run's events as SSE frames, with heartbeats while idle.

    The pending step of the run is never cancelled by a heartbeat; it is only
    cancelled when the stream itself is closed (client disconnect).
    """
    yield format_sse({"type": "run", "data": {"runId": run.run_id}})

    events = run.events()
    pending = asyncio.create_task(_next_event(events))
    try:
        while True:
            done, _ = await asyncio.wait({pending}, timeout=heartbeat_interval)
            if not done:
                yield HEARTBEAT
                continue

            event = pending.result()
            if event is None:
                break
            yield format_sse(event)
            pending = asyncio.create_task(_next_event(events))
    finally:
        if not pending.done():
            logger.info("Client disconnected from run %s", run.run_id)
            pending.cancel()


# =============================================================================
# Application
# =============================================================================


def default_orchestrator_factory(config: VibescanConfig) -> OrchestratorFactory:
    """Build orchestrators that share one tree cache."""
    cache = FileTreeCache(ttl=config.analysis.tree_cache_ttl)

    def factory(github_token: str | None) -> AnalysisOrchestrator:
        return create_orchestrator(config, github_token=github_token, cache=cache)

    return factory


def create_app(
    orchestrator_factory: OrchestratorFactory | None = None,
    history_store: HistoryStore | None = None,
    config: VibescanConfig | None = None,
) -> FastAPI:
    """Create the FastAPI application exposing vibescan operations."""
    config = config or load_config()
    factory = orchestrator_factory or default_orchestrator_factory(config)
    history = history_store if history_store is not None else InMemoryHistoryStore()
    heartbeat_interval = config.service.heartbeat_interval
    runs: dict[str, AnalysisRun] = {}

    app = FastAPI(title="vibescan", version=__version__)
    app.state.runs = runs
    app.state.history = history

    def get_orchestrator(token: str | None = Depends(bearer_token)) -> AnalysisOrchestrator:
        orchestrator = factory(token)
        orchestrator.on_complete = history.save
        return orchestrator

    @app.exception_handler(VibescanError)
    async def vibescan_error_handler(_: Request, exc: VibescanError) -> JSONResponse:
        return JSONResponse(
            status_code=status_for(exc),
            content={"error": exc.message, "code": exc.code, "retryable": exc.retryable},
        )

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(UTC).isoformat(),
            version=__version__,
        )

    @app.post("/api/validate-repo")
    async def validate_repo(
        payload: ValidateRepoRequest,
        orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        if not payload.repoUrl:
            return JSONResponse(
                status_code=400, content={"valid": False, "error": "repoUrl is required"}
            )
        try:
            metadata = await orchestrator.validate_repository(payload.repoUrl)
        except VibescanError as e:
            logger.warning("Validate repo failed: %s", e.message)
            status = 404 if e.code == "REPO_NOT_FOUND" else 400
            return JSONResponse(status_code=status, content={"valid": False, "error": e.message})
        finally:
            await orchestrator.aclose()
        return JSONResponse(content={"valid": True, **metadata.to_dict()})

    @app.get("/api/estimate")
    async def estimate(
        repo_url: str = Query(alias="repoUrl", min_length=1),
        orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        try:
            result = await orchestrator.estimate(repo_url)
        finally:
            await orchestrator.aclose()
        return result.to_dict()

    @app.post("/api/analyze")
    async def analyze(
        payload: AnalyzeRequest,
        orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    ) -> StreamingResponse:
        try:
            run = orchestrator.start(
                payload.repoUrl, payload.apiKey, PriorityTier(payload.priority)
            )
        except VibescanError:
            await orchestrator.aclose()
            raise

        runs[run.run_id] = run
        logger.info("Starting run %s for %s", run.run_id, run.reference.full_name)

        async def body() -> AsyncIterator[str]:
            try:
                async for frame in stream_run(run, heartbeat_interval):
                    yield frame
            finally:
                runs.pop(run.run_id, None)
                await orchestrator.aclose()

        return StreamingResponse(
            body(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post("/api/analyze/{run_id}/decision", response_model=DecisionResponse)
    async def decide(run_id: str, payload: DecisionRequest) -> DecisionResponse:
        run = runs.get(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        tier = PriorityTier(payload.tier)
        if payload.decision == "approve":
            run.approve(tier)
        else:
            run.stop(tier)
        return DecisionResponse(accepted=True)

    @app.get("/api/history")
    async def list_history(limit: int = Query(default=20, ge=1, le=100)) -> list[dict[str, Any]]:
        return [summary.to_dict() for summary in history.list(limit)]

    @app.get("/api/history/{run_id}")
    async def get_history(run_id: str) -> dict[str, Any]:
        summary = history.get(run_id)
        if summary is None:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        return summary.to_dict()

    @app.delete("/api/history/{run_id}", response_model=DeleteResponse)
    async def delete_history(run_id: str) -> DeleteResponse:
        if not history.delete(run_id):
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        return DeleteResponse(success=True)

    return app


def run_service(config: VibescanConfig, host: str | None = None, port: int | None = None) -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    app = create_app(config=config)
    uvicorn.run(app, host=host or config.service.host, port=port or config.service.port)
