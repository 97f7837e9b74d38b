"""Steps: the atomic, schema-typed units of a workflow."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from medicine_agent_orchestrator.workflow.errors import (
    StepExecutionError,
    ValidationError,
    WorkflowError,
)
from medicine_agent_orchestrator.workflow.schema import Schema, validate
from medicine_agent_orchestrator.workflow.streaming import StreamSink


@dataclass(frozen=True, slots=True)
class SuspendSignal:
    """Returned by a step (instead of an output) to pause the run.

    ``payload`` tells the caller what input is needed to resume.
    """

    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StepContext:
    """Everything a step may see about the run executing it.

    ``context`` is a read-only view of the outputs of earlier stages.
    ``resume_data`` is set only when the step is re-entered after a suspend.
    """

    run_id: str
    workflow_id: str
    stage_id: str
    context: Mapping[str, Any]
    resume_data: dict[str, Any] | None = None
    sink: StreamSink | None = None

    def emit(self, chunk: str) -> None:
        if self.sink is not None and chunk:
            self.sink.emit(chunk)


StepFn = Callable[[dict[str, Any], StepContext], dict[str, Any] | SuspendSignal]


@dataclass(frozen=True, slots=True)
class Step:
    """A named function from validated input to validated output.

    ``resume_schema`` declares the input a caller must provide to resume the
    step after it returned a :class:`SuspendSignal`.
    """

    id: str
    input_schema: Schema
    output_schema: Schema
    execute: StepFn
    resume_schema: Schema | None = None
    description: str = ""

    def run(
        self, input_data: Mapping[str, Any], ctx: StepContext
    ) -> dict[str, Any] | SuspendSignal:
        """Validate input, execute, validate output.

        Foreign exceptions become :class:`StepExecutionError` carrying this
        step's id; workflow errors raised by nested calls propagate unchanged.
        """

        try:
            value = validate(self.input_schema, input_data)
        except ValidationError as e:
            raise e.with_context(f"input of step '{self.id}'") from None

        try:
            out = self.execute(value, ctx)
        except WorkflowError:
            raise
        except Exception as e:
            raise StepExecutionError(self.id, str(e) or type(e).__name__) from e

        if isinstance(out, SuspendSignal):
            return out

        try:
            return validate(self.output_schema, out)
        except ValidationError as e:
            raise e.with_context(f"output of step '{self.id}'") from None


def create_step(
    *,
    id: str,
    input_schema: Schema,
    output_schema: Schema,
    execute: StepFn,
    resume_schema: Schema | None = None,
    description: str = "",
) -> Step:
    if not id.strip():
        raise ValueError("Step id must not be empty")
    return Step(
        id=id,
        input_schema=input_schema,
        output_schema=output_schema,
        execute=execute,
        resume_schema=resume_schema,
        description=description,
    )
