"""Typed, step-based workflow execution.

This package provides:
- declarative schemas and a validator
- steps, and the ``then`` / ``map`` / ``branch`` combinators
- committed, immutable workflows
- a run engine with start / suspend / resume / cancel
- streaming sinks for incremental output
"""

from medicine_agent_orchestrator.workflow.builder import Workflow, WorkflowBuilder, create_workflow
from medicine_agent_orchestrator.workflow.engine import RunEngine
from medicine_agent_orchestrator.workflow.errors import (
    BranchNoMatchError,
    IllegalTransitionError,
    RunAlreadyTerminatedError,
    RunCancelledError,
    StepExecutionError,
    UnknownRunError,
    ValidationError,
    WorkflowCommittedError,
    WorkflowDefinitionError,
    WorkflowError,
)
from medicine_agent_orchestrator.workflow.run import Run, RunResult, RunStatus
from medicine_agent_orchestrator.workflow.run_store import RunStore
from medicine_agent_orchestrator.workflow.schema import Field, Schema, validate
from medicine_agent_orchestrator.workflow.step import Step, StepContext, SuspendSignal, create_step
from medicine_agent_orchestrator.workflow.streaming import CollectingSink, QueueSink, StreamSink

__all__ = [
    "BranchNoMatchError",
    "CollectingSink",
    "Field",
    "IllegalTransitionError",
    "QueueSink",
    "Run",
    "RunAlreadyTerminatedError",
    "RunCancelledError",
    "RunEngine",
    "RunResult",
    "RunStatus",
    "RunStore",
    "Schema",
    "Step",
    "StepContext",
    "StepExecutionError",
    "StreamSink",
    "SuspendSignal",
    "UnknownRunError",
    "ValidationError",
    "Workflow",
    "WorkflowBuilder",
    "WorkflowCommittedError",
    "WorkflowDefinitionError",
    "WorkflowError",
    "create_step",
    "create_workflow",
    "validate",
]
