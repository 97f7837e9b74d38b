"""FastAPI app factory.

Endpoints are thin wrappers over :class:`RunEngine`. Every error body is
``{"error": "<message>"}``.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator, Mapping
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from medicine_agent_orchestrator import __version__
from medicine_agent_orchestrator.core.config import OrchestratorConfig
from medicine_agent_orchestrator.llm.factory import LLMFactory
from medicine_agent_orchestrator.server.config import ServerSettings
from medicine_agent_orchestrator.server.models import (
    ErrorResponse,
    HealthResponse,
    RunView,
    SuspendedRunResponse,
    WorkflowInfo,
)
from medicine_agent_orchestrator.workflow.builder import Workflow
from medicine_agent_orchestrator.workflow.engine import RunEngine
from medicine_agent_orchestrator.workflow.errors import (
    IllegalTransitionError,
    RunAlreadyTerminatedError,
    UnknownRunError,
    ValidationError,
    WorkflowError,
)
from medicine_agent_orchestrator.workflow.run import RunResult, RunStatus
from medicine_agent_orchestrator.workflow.schema import validate
from medicine_agent_orchestrator.workflow.streaming import GuardedSink, QueueSink
from medicine_agent_orchestrator.workflows.registry import build_workflows

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[WorkflowError], int] = {
    ValidationError: 400,
    UnknownRunError: 404,
    RunAlreadyTerminatedError: 409,
    IllegalTransitionError: 409,
}


def _status_for(error: WorkflowError) -> int:
    for error_type, status in _ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)


def _run_response(result: RunResult) -> JSONResponse:
    if result.status == RunStatus.SUCCESS:
        return JSONResponse(result.result or {})
    if result.status == RunStatus.SUSPENDED:
        body = SuspendedRunResponse(
            run_id=result.run_id,
            resume_token=result.resume_token or result.run_id,
            payload=result.payload or {},
        )
        return JSONResponse(body.model_dump())
    return _error(result.error or "Workflow run failed", 500)


def _sse(data: str, *, event: str | None = None) -> str:
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


def create_app(
    config: OrchestratorConfig | None = None,
    *,
    engine: RunEngine | None = None,
    workflows: Mapping[str, Workflow] | None = None,
    settings: ServerSettings | None = None,
) -> FastAPI:
    config = config or OrchestratorConfig()
    settings = settings or ServerSettings()
    engine = engine or RunEngine.from_config(config.engine)
    if workflows is None:
        workflows = build_workflows(config, LLMFactory.create_optional(config.llm))
    for workflow in workflows.values():
        engine.register(workflow)

    app = FastAPI(
        title="Medicine Agent Orchestrator",
        version=__version__,
        description="REST API over the medicine workflows.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.workflows = dict(workflows)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkflowError)
    def handle_workflow_error(_request: Request, exc: WorkflowError) -> JSONResponse:
        return _error(str(exc), _status_for(exc))

    @app.exception_handler(StarletteHTTPException)
    def handle_http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    def handle_request_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        return _error(problems or "Invalid request", 400)

    @app.exception_handler(Exception)
    def handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled server error")
        return _error("Internal server error", 500)

    def _workflow(path: str) -> Workflow:
        workflow = app.state.workflows.get(path)
        if workflow is None:
            raise HTTPException(status_code=404, detail=f"Unknown workflow: {path}")
        return workflow

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(version=__version__, workflows=len(app.state.workflows))

    @app.get("/api/workflows", response_model=list[WorkflowInfo])
    def list_workflows() -> list[WorkflowInfo]:
        return [
            WorkflowInfo(path=path, **workflow.describe())
            for path, workflow in app.state.workflows.items()
        ]

    @app.post("/api/workflows/{path}")
    def run_workflow(path: str, body: dict[str, Any] = Body(...)) -> JSONResponse:
        workflow = _workflow(path)
        return _run_response(engine.start(workflow, body))

    @app.post("/api/workflows/{path}/stream")
    def stream_workflow(path: str, body: dict[str, Any] = Body(...)) -> StreamingResponse:
        workflow = _workflow(path)
        # Reject bad input with a plain 400 before the stream starts.
        try:
            value = validate(workflow.input_schema, body)
        except ValidationError as e:
            raise e.with_context(f"input of workflow '{workflow.id}'") from None

        chunks = QueueSink()
        # The engine closes the sink; closing it again after a crash is a no-op.
        sink = GuardedSink(chunks, run_id=f"stream-{workflow.id}")
        outcome: dict[str, Any] = {}

        def run() -> None:
            try:
                outcome["result"] = engine.start(workflow, value, sink=sink)
            except Exception as e:
                logger.exception("Streaming run crashed", extra={"workflow_id": workflow.id})
                outcome["error"] = str(e)
                sink.close()

        thread = threading.Thread(target=run, name=f"stream-{workflow.id}", daemon=True)
        thread.start()

        def events() -> Iterator[str]:
            for chunk in chunks:
                yield _sse(chunk)
            thread.join()
            result: RunResult | None = outcome.get("result")
            if result is None or result.status == RunStatus.FAILED:
                message = result.error if result is not None else outcome.get("error")
                yield _sse(json.dumps({"error": message or "Workflow run failed"}), event="error")
            else:
                yield _sse(json.dumps(result.to_json()), event="done")

        return StreamingResponse(events(), media_type="text/event-stream")

    @app.post("/api/runs/{run_id}/resume")
    def resume_run(run_id: str, body: dict[str, Any] = Body(...)) -> JSONResponse:
        return _run_response(engine.resume(run_id, body))

    @app.post("/api/runs/{run_id}/cancel")
    def cancel_run(run_id: str) -> JSONResponse:
        return JSONResponse(engine.cancel(run_id).to_json())

    @app.get("/api/runs/{run_id}", response_model=RunView)
    def get_run(run_id: str) -> RunView:
        return RunView.from_run(engine.get_run(run_id))

    return app
