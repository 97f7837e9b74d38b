"""Run engine: executes committed workflows one run at a time.

A run walks the pipeline strictly in order. At every edge the incoming value is
validated against the consuming stage's contract, so a faulty map or step is
reported at the stage that produced the bad value.

Suspension is a returned value, not a blocked thread: when a step returns a
:class:`SuspendSignal` the engine records the resume point in the run store and
returns. ``resume`` later re-enters the suspended stage with the caller's input.
In a branch only the waiting steps re-enter; siblings that already finished
keep the outputs stored on the run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from medicine_agent_orchestrator.core.config import EngineConfig
from medicine_agent_orchestrator.workflow.builder import Workflow
from medicine_agent_orchestrator.workflow.errors import (
    BranchNoMatchError,
    RunAlreadyTerminatedError,
    RunCancelledError,
    StepExecutionError,
    UnknownRunError,
    ValidationError,
    WorkflowDefinitionError,
    WorkflowError,
)
from medicine_agent_orchestrator.workflow.run import Run, RunResult, RunStatus
from medicine_agent_orchestrator.workflow.run_store import RunStore
from medicine_agent_orchestrator.workflow.schema import Schema, validate
from medicine_agent_orchestrator.workflow.stages import BranchStage, MapStage, Stage, StepStage
from medicine_agent_orchestrator.workflow.step import Step, StepContext, SuspendSignal
from medicine_agent_orchestrator.workflow.streaming import GuardedSink, StreamSink

logger = logging.getLogger(__name__)

_ANY_OBJECT = Schema(allow_extra=True)


class RunEngine:
    """Starts, resumes and cancels runs of workflows.

    Besides the run store the engine only remembers which workflow each run
    was started with, so a single instance can serve many concurrent runs.
    """

    def __init__(
        self,
        store: RunStore | None = None,
        *,
        branch_max_workers: int = 4,
        branch_timeout_seconds: float | None = 120.0,
    ) -> None:
        self.store = store or RunStore()
        self.branch_max_workers = max(1, branch_max_workers)
        self.branch_timeout_seconds = branch_timeout_seconds
        self._workflows: dict[str, Workflow] = {}
        self._run_workflows: dict[str, Workflow] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: EngineConfig) -> RunEngine:
        return cls(
            RunStore(config.run_store_path),
            branch_max_workers=config.branch_max_workers,
            branch_timeout_seconds=config.branch_timeout_seconds,
        )

    def register(self, workflow: Workflow) -> Workflow:
        """Make ``workflow`` retrievable by id.

        Raises:
            WorkflowDefinitionError: a different workflow already uses that id.
        """

        with self._lock:
            existing = self._workflows.get(workflow.id)
            if existing is not None and existing is not workflow:
                raise WorkflowDefinitionError(f"Workflow '{workflow.id}' is already registered")
            self._workflows[workflow.id] = workflow
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise KeyError(workflow_id)
        return workflow

    def get_run(self, run_id: str) -> Run:
        return self.store.get(run_id)

    def start(
        self,
        workflow: Workflow,
        input_data: Mapping[str, Any],
        *,
        sink: StreamSink | None = None,
    ) -> RunResult:
        """Validate ``input_data`` and run ``workflow`` until it finishes or suspends.

        ``workflow`` need not be registered; the run remembers it for ``resume``.

        Raises:
            ValidationError: the input does not match the workflow input schema.
                No run is created in that case.
        """

        try:
            value = validate(workflow.input_schema, input_data)
        except ValidationError as e:
            if sink is not None:
                sink.close()
            raise e.with_context(f"input of workflow '{workflow.id}'") from None

        run = self.store.create(workflow_id=workflow.id, input_data=value)
        with self._lock:
            self._run_workflows[run.run_id] = workflow
        logger.info(
            "Run started", extra={"run_id": run.run_id, "workflow_id": workflow.id}
        )
        return self._advance(workflow, run, resume_data=None, sink=sink)

    def resume(
        self,
        run_id: str,
        resume_input: Mapping[str, Any],
        *,
        sink: StreamSink | None = None,
    ) -> RunResult:
        """Continue a suspended run from the stage that suspended it.

        Raises:
            UnknownRunError: no run with that id.
            RunAlreadyTerminatedError: the run already succeeded or failed.
            IllegalTransitionError: another resume of the run is in progress.
            ValidationError: ``resume_input`` does not match the resume schema of
                a waiting step. The run stays suspended.
        """

        guard = GuardedSink(sink, run_id=run_id)
        try:
            run = self.store.get(run_id)
            if run.status.is_terminal:
                raise RunAlreadyTerminatedError(run_id, run.status.value)
            workflow = self._workflow_for(run)
            resume_data = _validate_resume(workflow, run, resume_input)
            # A concurrent resume that claimed the run first makes this raise.
            run = self.store.transition(run_id, RunStatus.RUNNING, expected=RunStatus.SUSPENDED)
        except Exception:
            guard.close()
            raise

        logger.info("Run resumed", extra={"run_id": run_id, "workflow_id": workflow.id})
        return self._advance(workflow, run, resume_data=resume_data, sink=guard)

    def cancel(self, run_id: str) -> RunResult:
        """Fail a suspended run with a ``Cancelled`` error."""

        error = RunCancelledError(run_id)
        run = self.store.transition(
            run_id,
            RunStatus.FAILED,
            expected=RunStatus.SUSPENDED,
            error=str(error),
            error_kind=error.kind,
            failed_stage_id=self.store.get(run_id).suspended_step_id,
            suspend_payload=None,
        )
        logger.info("Run cancelled", extra={"run_id": run_id, "workflow_id": run.workflow_id})
        return RunResult.from_run(run)

    def _workflow_for(self, run: Run) -> Workflow:
        with self._lock:
            workflow = self._run_workflows.get(run.run_id)
        if workflow is not None:
            return workflow
        # Runs created by another engine sharing this store.
        try:
            return self.get_workflow(run.workflow_id)
        except KeyError:
            raise UnknownRunError(run.run_id) from None

    def _advance(
        self,
        workflow: Workflow,
        run: Run,
        *,
        resume_data: dict[str, Any] | None,
        sink: StreamSink | None,
    ) -> RunResult:
        guard = sink if isinstance(sink, GuardedSink) else GuardedSink(sink, run_id=run.run_id)
        stage_id: str | None = None
        resume: _Resume | None = None
        if resume_data is not None:
            resume = _Resume(
                data=resume_data,
                step_ids=tuple(run.suspended_step_ids),
                completed=dict(run.branch_outputs),
            )
        try:
            index = run.current_stage_index
            context = dict(run.context)
            value = _stage_input(workflow, index, run.input, context)

            while index < len(workflow.stages):
                stage = workflow.stages[index]
                stage_id = stage.id
                outcome = self._execute_stage(
                    workflow, stage, index, value, run, context, resume, guard
                )
                resume = None

                if isinstance(outcome, _Suspended):
                    run = self.store.transition(
                        run.run_id,
                        RunStatus.SUSPENDED,
                        context=dict(context),
                        current_stage_index=index,
                        suspend_payload=outcome.signal.payload,
                        suspended_step_id=outcome.step_ids[0],
                        suspended_step_ids=list(outcome.step_ids),
                        branch_outputs=dict(outcome.completed),
                    )
                    logger.info(
                        "Run suspended",
                        extra={
                            "run_id": run.run_id,
                            "workflow_id": workflow.id,
                            "stage_id": outcome.step_ids[0],
                            "waiting": list(outcome.step_ids),
                        },
                    )
                    return RunResult.from_run(run)

                context[stage.id] = outcome
                index += 1
                value = outcome
                run = self.store.update(
                    run.run_id,
                    context=dict(context),
                    current_stage_index=index,
                    suspend_payload=None,
                    suspended_step_id=None,
                    suspended_step_ids=[],
                    branch_outputs={},
                )
                logger.debug(
                    "Stage completed",
                    extra={"run_id": run.run_id, "workflow_id": workflow.id, "stage_id": stage.id},
                )

            stage_id = None
            try:
                result = validate(workflow.output_schema, value)
            except ValidationError as e:
                raise e.with_context(f"output of workflow '{workflow.id}'") from None

            run = self.store.transition(
                run.run_id,
                RunStatus.SUCCESS,
                result=result,
                suspend_payload=None,
                suspended_step_id=None,
            )
            logger.info("Run succeeded", extra={"run_id": run.run_id, "workflow_id": workflow.id})
            return RunResult.from_run(run)

        except WorkflowError as e:
            return self._fail(run, workflow, getattr(e, "stage_id", None) or stage_id, e)
        except Exception as e:
            logger.exception(
                "Unexpected engine error",
                extra={"run_id": run.run_id, "workflow_id": workflow.id, "stage_id": stage_id},
            )
            return self._fail(run, workflow, stage_id, e)
        finally:
            guard.close()

    def _fail(
        self, run: Run, workflow: Workflow, stage_id: str | None, error: Exception
    ) -> RunResult:
        kind = error.kind if isinstance(error, WorkflowError) else "InternalError"
        run = self.store.transition(
            run.run_id,
            RunStatus.FAILED,
            failed_stage_id=stage_id,
            error=str(error),
            error_kind=kind,
            suspend_payload=None,
        )
        logger.warning(
            "Run failed",
            extra={
                "run_id": run.run_id,
                "workflow_id": workflow.id,
                "stage_id": stage_id,
                "error_kind": kind,
                "error": str(error),
            },
        )
        return RunResult.from_run(run)

    def _execute_stage(
        self,
        workflow: Workflow,
        stage: Stage,
        index: int,
        value: dict[str, Any],
        run: Run,
        context: dict[str, Any],
        resume: _Resume | None,
        sink: GuardedSink,
    ) -> dict[str, Any] | _Suspended:
        if isinstance(stage, StepStage):
            resume_data = resume.data if resume is not None else None
            return self._run_step(stage.step, value, run, context, resume_data, sink)
        if isinstance(stage, MapStage):
            return _run_map(workflow, stage, index, value)
        if isinstance(stage, BranchStage):
            return self._run_branch(stage, value, run, context, resume, sink)
        raise WorkflowDefinitionError(f"Unknown stage type: {type(stage).__name__}")

    def _run_step(
        self,
        step: Step,
        value: dict[str, Any],
        run: Run,
        context: dict[str, Any],
        resume_data: dict[str, Any] | None,
        sink: GuardedSink,
    ) -> dict[str, Any] | _Suspended:
        ctx = StepContext(
            run_id=run.run_id,
            workflow_id=run.workflow_id,
            stage_id=step.id,
            context=MappingProxyType(dict(context)),
            resume_data=resume_data,
            sink=sink,
        )
        out = step.run(value, ctx)
        if isinstance(out, SuspendSignal):
            return _Suspended(step_ids=(step.id,), signal=out)
        return out

    def _run_branch(
        self,
        stage: BranchStage,
        value: dict[str, Any],
        run: Run,
        context: dict[str, Any],
        resume: _Resume | None,
        sink: GuardedSink,
    ) -> dict[str, Any] | _Suspended:
        completed: dict[str, Any] = {}
        resume_data: dict[str, Any] | None = None
        if resume is not None and resume.step_ids:
            # Siblings that finished before the suspend keep their stored outputs.
            matched = [step for step in stage.steps() if step.id in resume.step_ids]
            completed = dict(resume.completed)
            resume_data = resume.data
        else:
            try:
                matched = stage.evaluate(value)
            except Exception as e:
                raise StepExecutionError(stage.id, f"branch predicate raised: {e}") from e

            if not matched:
                if stage.allow_empty:
                    return {}
                raise BranchNoMatchError(stage.id)

        logger.debug(
            "Branch matched",
            extra={
                "run_id": run.run_id,
                "stage_id": stage.id,
                "matched": [s.id for s in matched],
                "resumed": resume_data is not None,
            },
        )

        results: dict[str, dict[str, Any] | _Suspended] = {}
        if len(matched) == 1:
            step = matched[0]
            results[step.id] = self._run_step(step, value, run, context, resume_data, sink)
            return _merge_branch(stage, completed, results)

        pool = ThreadPoolExecutor(
            max_workers=min(self.branch_max_workers, len(matched)),
            thread_name_prefix=f"branch-{stage.id}",
        )
        try:
            futures: dict[str, Future[dict[str, Any] | _Suspended]] = {
                step.id: pool.submit(
                    self._run_step, step, value, run, context, resume_data, sink
                )
                for step in matched
            }
            wait(futures.values(), timeout=self.branch_timeout_seconds)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        for step in matched:
            future = futures[step.id]
            if not future.done():
                raise StepExecutionError(
                    step.id, f"timed out after {self.branch_timeout_seconds}s"
                )
            results[step.id] = future.result()
        return _merge_branch(stage, completed, results)


@dataclass(frozen=True, slots=True)
class _Resume:
    """Resume input plus what the suspended stage left behind."""

    data: dict[str, Any]
    step_ids: tuple[str, ...] = ()
    completed: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class _Suspended:
    step_ids: tuple[str, ...]
    signal: SuspendSignal
    completed: dict[str, Any] = field(default_factory=dict)


def _merge_branch(
    stage: BranchStage,
    completed: dict[str, Any],
    results: dict[str, dict[str, Any] | _Suspended],
) -> dict[str, Any] | _Suspended:
    outputs = dict(completed)
    waiting: list[_Suspended] = []
    for step_id, out in results.items():
        if isinstance(out, _Suspended):
            waiting.append(out)
        else:
            outputs[step_id] = out

    ordered = {step.id: outputs[step.id] for step in stage.steps() if step.id in outputs}
    if waiting:
        # The first waiting step in route order speaks for the branch.
        return _Suspended(
            step_ids=tuple(s.step_ids[0] for s in waiting),
            signal=waiting[0].signal,
            completed=ordered,
        )
    return ordered


def _validate_resume(
    workflow: Workflow, run: Run, resume_input: Mapping[str, Any]
) -> dict[str, Any]:
    """Check ``resume_input`` against the resume schema of every waiting step."""

    step_ids = run.suspended_step_ids or [run.suspended_step_id or ""]
    validated: dict[str, Any] | None = None
    for step_id in step_ids:
        step = workflow.find_step(step_id)
        schema = step.resume_schema if step and step.resume_schema else _ANY_OBJECT
        try:
            value = validate(schema, resume_input)
        except ValidationError as e:
            raise e.with_context(f"resume input of step '{step_id}'") from None
        if validated is None:
            validated = value
    return validated if validated is not None else {}


def _stage_input(
    workflow: Workflow, index: int, workflow_input: dict[str, Any], context: dict[str, Any]
) -> dict[str, Any]:
    if index == 0:
        return workflow_input
    return context[workflow.stages[index - 1].id]


def _run_map(
    workflow: Workflow, stage: MapStage, index: int, value: dict[str, Any]
) -> dict[str, Any]:
    try:
        out = stage.fn(dict(value))
    except WorkflowError:
        raise
    except Exception as e:
        raise StepExecutionError(stage.id, str(e) or type(e).__name__) from e

    # The map has no schema of its own; hold it to whatever consumes its result.
    consumers: list[Schema]
    if index + 1 < len(workflow.stages):
        consumers = workflow.stages[index + 1].input_schemas() or [_ANY_OBJECT]
    else:
        consumers = [workflow.output_schema]

    for schema in consumers:
        try:
            validate(schema, out)
        except ValidationError as e:
            raise e.with_context(f"output of map '{stage.id}'") from None
    return dict(out)
