"""Error taxonomy for the workflow engine.

Every error raised by the engine derives from :class:`WorkflowError` so callers
(the HTTP layer, the CLI) can map them to user-visible responses in one place.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""

    kind: str = "WorkflowError"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A single schema violation at a dotted path (``$`` is the root)."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationError(WorkflowError):
    """A value failed its declared schema. Never retried, never coerced."""

    kind = "ValidationError"

    def __init__(self, issues: Sequence[ValidationIssue], *, context: str = "") -> None:
        self.issues = list(issues)
        self.context = context
        detail = "; ".join(str(i) for i in self.issues) or "invalid value"
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}{detail}")

    def with_context(self, context: str) -> ValidationError:
        return ValidationError(self.issues, context=context)


class StepExecutionError(WorkflowError):
    """A stage's underlying work failed (agent error, tool error, timeout, bug)."""

    kind = "StepExecutionError"

    def __init__(self, stage_id: str, message: str) -> None:
        self.stage_id = stage_id
        super().__init__(f"Step '{stage_id}' failed: {message}")


class BranchNoMatchError(WorkflowError):
    """No predicate of a branch matched its input."""

    kind = "BranchNoMatchError"

    def __init__(self, stage_id: str) -> None:
        self.stage_id = stage_id
        super().__init__(f"No route matched in branch '{stage_id}'")


class RunAlreadyTerminatedError(WorkflowError):
    kind = "RunAlreadyTerminatedError"

    def __init__(self, run_id: str, status: str) -> None:
        self.run_id = run_id
        self.status = status
        super().__init__(f"Run {run_id} already terminated with status '{status}'")


class UnknownRunError(WorkflowError):
    kind = "UnknownRunError"

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Unknown run: {run_id}")


class RunCancelledError(WorkflowError):
    kind = "Cancelled"

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run {run_id} was cancelled")


class IllegalTransitionError(WorkflowError):
    kind = "IllegalTransitionError"


class WorkflowDefinitionError(WorkflowError):
    """A workflow was assembled incorrectly (duplicate ids, empty pipeline, ...)."""

    kind = "WorkflowDefinitionError"


class WorkflowCommittedError(WorkflowDefinitionError):
    """A stage was appended after ``commit()``."""

    kind = "WorkflowCommittedError"
