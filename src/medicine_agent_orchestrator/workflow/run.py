"""Run records and the run state machine.

Legal transitions::

    running   -> suspended | success | failed
    suspended -> running | failed (cancel)

``success`` and ``failed`` are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from medicine_agent_orchestrator.workflow.errors import IllegalTransitionError


class RunStatus(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {RunStatus.SUCCESS, RunStatus.FAILED}


ALLOWED_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.RUNNING: {RunStatus.SUSPENDED, RunStatus.SUCCESS, RunStatus.FAILED},
    RunStatus.SUSPENDED: {RunStatus.RUNNING, RunStatus.FAILED},
    RunStatus.SUCCESS: set(),
    RunStatus.FAILED: set(),
}


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class Run(BaseModel):
    """One execution of a workflow against one input.

    ``context`` maps stage id to that stage's output. The value fed to the stage
    at ``current_stage_index`` is the previous stage's output (or ``input``).

    While a branch is suspended, ``suspended_step_ids`` lists every branch step
    waiting for input and ``branch_outputs`` holds the outputs of its siblings
    that already finished. Only the waiting steps run again on resume.
    """

    run_id: str
    workflow_id: str
    status: RunStatus = RunStatus.RUNNING
    input: dict[str, Any] = Field(default_factory=dict)
    current_stage_index: int = 0
    context: dict[str, Any] = Field(default_factory=dict)

    suspend_payload: dict[str, Any] | None = None
    suspended_step_id: str | None = None
    suspended_step_ids: list[str] = Field(default_factory=list)
    branch_outputs: dict[str, Any] = Field(default_factory=dict)

    result: dict[str, Any] | None = None
    failed_stage_id: str | None = None
    error: str | None = None
    error_kind: str | None = None

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


def transition(*, current: Run, to: RunStatus, **updates: Any) -> Run:
    allowed = ALLOWED_TRANSITIONS.get(current.status, set())
    if to not in allowed:
        raise IllegalTransitionError(
            f"Illegal transition for run {current.run_id}: {current.status.value} -> {to.value}"
        )
    return current.model_copy(update={"status": to, "updated_at": _utc_now(), **updates})


@dataclass(frozen=True, slots=True)
class RunResult:
    """What ``start``/``resume``/``cancel`` hand back to the caller."""

    run_id: str
    workflow_id: str
    status: RunStatus
    result: dict[str, Any] | None = None
    payload: dict[str, Any] | None = None
    failed_stage_id: str | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def resume_token(self) -> str | None:
        return self.run_id if self.status == RunStatus.SUSPENDED else None

    @staticmethod
    def from_run(run: Run) -> RunResult:
        return RunResult(
            run_id=run.run_id,
            workflow_id=run.workflow_id,
            status=run.status,
            result=run.result,
            payload=run.suspend_payload if run.status == RunStatus.SUSPENDED else None,
            failed_stage_id=run.failed_stage_id,
            error=run.error,
            error_kind=run.error_kind,
        )

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
        }
        if self.result is not None:
            out["result"] = self.result
        if self.status == RunStatus.SUSPENDED:
            out["resume_token"] = self.resume_token
            out["payload"] = self.payload or {}
        if self.error is not None:
            out["error"] = self.error
            out["error_kind"] = self.error_kind
            out["failed_stage_id"] = self.failed_stage_id
        return out
