"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from medicine_agent_orchestrator.workflow.run import Run


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    version: str
    workflows: int


class WorkflowInfo(BaseModel):
    path: str
    id: str
    description: str
    input_schema: dict[str, Any] = Field(serialization_alias="inputSchema")
    output_schema: dict[str, Any] = Field(serialization_alias="outputSchema")
    stages: list[str]


class SuspendedRunResponse(BaseModel):
    status: Literal["suspended"] = "suspended"
    run_id: str
    resume_token: str
    payload: dict[str, Any] = Field(default_factory=dict)


class RunView(BaseModel):
    run_id: str
    workflow_id: str
    status: str
    current_stage_index: int

    payload: dict[str, Any] | None = None
    suspended_step_id: str | None = None
    result: dict[str, Any] | None = None
    failed_stage_id: str | None = None
    error: str | None = None
    error_kind: str | None = None

    created_at: datetime
    updated_at: datetime

    @staticmethod
    def from_run(run: Run) -> RunView:
        return RunView(
            run_id=run.run_id,
            workflow_id=run.workflow_id,
            status=run.status.value,
            current_stage_index=run.current_stage_index,
            payload=run.suspend_payload,
            suspended_step_id=run.suspended_step_id,
            result=run.result,
            failed_stage_id=run.failed_stage_id,
            error=run.error,
            error_kind=run.error_kind,
            created_at=run.created_at,
            updated_at=run.updated_at,
        )
