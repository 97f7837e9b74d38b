"""Unit tests for the run engine: lifecycle, branching, suspend/resume and cancel."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import pytest

from medicine_agent_orchestrator.workflow.builder import Workflow, create_workflow
from medicine_agent_orchestrator.workflow.engine import RunEngine
from medicine_agent_orchestrator.workflow.errors import (
    IllegalTransitionError,
    RunAlreadyTerminatedError,
    UnknownRunError,
    ValidationError,
    WorkflowDefinitionError,
)
from medicine_agent_orchestrator.workflow.run import Run, RunStatus
from medicine_agent_orchestrator.workflow.run_store import RunStore
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import Step, StepContext, SuspendSignal, create_step
from medicine_agent_orchestrator.workflow.streaming import CollectingSink

Text = Schema({"text": Field("string")})
Answer = Schema({"answer": Field("string")})
Confirmed = Schema({"text": Field("string"), "confirmed": Field("boolean")})


def _echo(step_id: str, calls: list[str] | None = None, suffix: str = "") -> Step:
    def execute(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        if calls is not None:
            calls.append(step_id)
        ctx.emit(f"{step_id}:{data['text']}")
        return {"text": data["text"] + suffix}

    return create_step(id=step_id, input_schema=Text, output_schema=Text, execute=execute)


def _confirm_step(step_id: str = "confirm", calls: list[str] | None = None) -> Step:
    def execute(data: dict[str, Any], ctx: StepContext) -> dict[str, Any] | SuspendSignal:
        if calls is not None:
            calls.append(step_id)
        if ctx.resume_data is None:
            return SuspendSignal({"question": "Confirm dosage?"})
        return {"text": data["text"], "confirmed": ctx.resume_data["answer"] == "yes"}

    return create_step(
        id=step_id,
        input_schema=Text,
        output_schema=Confirmed,
        resume_schema=Answer,
        execute=execute,
    )


def _dosage_workflow(calls: list[str]) -> Workflow:
    return (
        create_workflow(id="dosage", input_schema=Text, output_schema=Confirmed)
        .then(_echo("lookup", calls, suffix=" 200mg"))
        .then(_confirm_step())
        .commit()
    )


def test_linear_run_succeeds(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="linear", input_schema=Text, output_schema=Text)
        .then(_echo("a", suffix="-a"))
        .then(_echo("b", suffix="-b"))
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.SUCCESS
    assert result.result == {"text": "x-a-b"}
    run = engine.get_run(result.run_id)
    assert run.context == {"a": {"text": "x-a"}, "b": {"text": "x-a-b"}}
    assert run.current_stage_index == 2


def test_invalid_input_raises_and_creates_no_run(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text).then(_echo("a")).commit()
    )
    sink = CollectingSink()

    with pytest.raises(ValidationError, match="input of workflow 'wf'"):
        engine.start(workflow, {"text": 1}, sink=sink)

    assert engine.store.list() == []
    assert sink.close_count == 1


def test_map_output_violation_fails_the_run_at_the_map(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .map(lambda v: {"text": v["text"], "extra": 1}, id="reshape")
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.FAILED
    assert result.error_kind == "ValidationError"
    assert result.failed_stage_id == "reshape"
    assert "output of map 'reshape'" in (result.error or "")


def test_map_output_is_checked_against_next_step_input(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .map(lambda v: {"prompt": v["text"]}, id="rename")
        .then(_echo("a"))
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.FAILED
    assert result.failed_stage_id == "rename"


def test_step_failure_is_recorded_with_stage_id(engine: RunEngine) -> None:
    def boom(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        raise RuntimeError("openFDA unreachable")

    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .then(create_step(id="boom", input_schema=Text, output_schema=Text, execute=boom))
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.FAILED
    assert result.error_kind == "StepExecutionError"
    assert result.failed_stage_id == "boom"
    assert engine.get_run(result.run_id).status == RunStatus.FAILED


def test_step_output_violation_fails_the_run_at_the_step(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .then(
            create_step(
                id="lookup",
                input_schema=Text,
                output_schema=Text,
                execute=lambda data, ctx: {"text": 1},
            )
        )
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.FAILED
    assert result.error_kind == "ValidationError"
    assert result.failed_stage_id == "lookup"
    assert "output of step 'lookup'" in (result.error or "")


def test_stored_context_is_a_snapshot(engine: RunEngine) -> None:
    seen: list[Run] = []

    def peek(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        seen.append(engine.get_run(ctx.run_id))
        return data

    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .then(_echo("a"))
        .then(create_step(id="peek", input_schema=Text, output_schema=Text, execute=peek))
        .then(_echo("b"))
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.SUCCESS
    assert list(seen[0].context) == ["a"]
    assert list(engine.get_run(result.run_id).context) == ["a", "peek", "b"]


def test_branch_runs_exactly_the_matching_steps(engine: RunEngine) -> None:
    calls: list[str] = []
    lock = threading.Lock()

    def recording(step_id: str) -> Step:
        def execute(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
            with lock:
                calls.append(step_id)
            return {"text": f"{step_id}:{data['text']}"}

        return create_step(id=step_id, input_schema=Text, output_schema=Text, execute=execute)

    workflow = (
        create_workflow(id="fanout", input_schema=Text, output_schema=Schema(allow_extra=True))
        .branch(
            [
                (lambda v: True, recording("s1")),
                (lambda v: False, recording("s2")),
                (lambda v: True, recording("s3")),
            ],
            id="fan",
        )
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.SUCCESS
    assert sorted(calls) == ["s1", "s3"]
    assert result.result == {"s1": {"text": "s1:x"}, "s3": {"text": "s3:x"}}


def test_branch_without_match_fails(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Schema(allow_extra=True))
        .branch([(lambda v: False, _echo("never"))], id="route")
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.FAILED
    assert result.error_kind == "BranchNoMatchError"
    assert result.failed_stage_id == "route"


def test_branch_allow_empty_yields_empty_output(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .branch([(lambda v: False, _echo("never"))], allow_empty=True)
        .map(lambda v: {"text": f"{len(v)} answers"})
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.SUCCESS
    assert result.result == {"text": "0 answers"}


def test_branch_predicate_error_fails_at_branch(engine: RunEngine) -> None:
    def broken(value: dict[str, Any]) -> bool:
        raise KeyError("intent")

    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Schema(allow_extra=True))
        .branch([(broken, _echo("a"))], id="route")
        .commit()
    )

    result = engine.start(workflow, {"text": "x"})

    assert result.status == RunStatus.FAILED
    assert result.error_kind == "StepExecutionError"
    assert result.failed_stage_id == "route"


def test_branch_timeout_fails_the_slow_step() -> None:
    release = threading.Event()

    def slow(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        release.wait(5)
        return data

    slow_step = create_step(id="slow", input_schema=Text, output_schema=Text, execute=slow)
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Schema(allow_extra=True))
        .branch([(lambda v: True, _echo("fast")), (lambda v: True, slow_step)])
        .commit()
    )
    engine = RunEngine(branch_timeout_seconds=0.2)

    try:
        result = engine.start(workflow, {"text": "x"})
    finally:
        release.set()

    assert result.status == RunStatus.FAILED
    assert result.failed_stage_id == "slow"
    assert "timed out" in (result.error or "")


def test_branch_suspend_resumes_only_the_waiting_step(engine: RunEngine) -> None:
    calls: list[str] = []
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Schema(allow_extra=True))
        .branch(
            [
                (lambda v: True, _echo("notify", calls)),
                (lambda v: True, _confirm_step(calls=calls)),
            ],
            id="fan",
        )
        .commit()
    )

    started = engine.start(workflow, {"text": "x"})

    assert started.status == RunStatus.SUSPENDED
    assert started.payload == {"question": "Confirm dosage?"}
    assert sorted(calls) == ["confirm", "notify"]
    run = engine.get_run(started.run_id)
    assert run.suspended_step_ids == ["confirm"]
    assert run.branch_outputs == {"notify": {"text": "x"}}

    finished = engine.resume(started.run_id, {"answer": "yes"})

    assert finished.status == RunStatus.SUCCESS
    assert sorted(calls) == ["confirm", "confirm", "notify"]
    assert finished.result == {
        "notify": {"text": "x"},
        "confirm": {"text": "x", "confirmed": True},
    }
    assert list(finished.result) == ["notify", "confirm"]
    assert engine.get_run(started.run_id).branch_outputs == {}


def test_branch_resume_reaches_every_waiting_step(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Schema(allow_extra=True))
        .branch(
            [
                (lambda v: True, _confirm_step("first")),
                (lambda v: True, _confirm_step("second")),
            ],
        )
        .commit()
    )

    started = engine.start(workflow, {"text": "x"})

    run = engine.get_run(started.run_id)
    assert run.suspended_step_ids == ["first", "second"]
    assert run.suspended_step_id == "first"

    with pytest.raises(ValidationError, match="resume input of step 'first'"):
        engine.resume(started.run_id, {})

    finished = engine.resume(started.run_id, {"answer": "yes"})

    assert finished.result == {
        "first": {"text": "x", "confirmed": True},
        "second": {"text": "x", "confirmed": True},
    }


def test_suspend_and_resume_confirm_dosage(engine: RunEngine) -> None:
    calls: list[str] = []
    workflow = _dosage_workflow(calls)

    started = engine.start(workflow, {"text": "ibuprofen"})

    assert started.status == RunStatus.SUSPENDED
    assert started.resume_token == started.run_id
    assert started.payload == {"question": "Confirm dosage?"}
    run = engine.get_run(started.run_id)
    assert run.status == RunStatus.SUSPENDED
    assert run.suspended_step_id == "confirm"
    assert run.current_stage_index == 1

    finished = engine.resume(started.run_id, {"answer": "yes"})

    assert finished.status == RunStatus.SUCCESS
    assert finished.result == {"text": "ibuprofen 200mg", "confirmed": True}
    assert calls == ["lookup"]


def test_resume_json_shape(engine: RunEngine) -> None:
    started = engine.start(_dosage_workflow([]), {"text": "ibuprofen"})

    body = started.to_json()

    assert body["status"] == "suspended"
    assert body["resume_token"] == started.run_id
    assert body["payload"] == {"question": "Confirm dosage?"}


def test_double_resume_is_rejected(engine: RunEngine) -> None:
    started = engine.start(_dosage_workflow([]), {"text": "ibuprofen"})
    engine.resume(started.run_id, {"answer": "yes"})

    with pytest.raises(RunAlreadyTerminatedError):
        engine.resume(started.run_id, {"answer": "yes"})


def test_concurrent_resumes_let_exactly_one_through(engine: RunEngine) -> None:
    entered, release = threading.Event(), threading.Event()

    def confirm(data: dict[str, Any], ctx: StepContext) -> dict[str, Any] | SuspendSignal:
        if ctx.resume_data is None:
            return SuspendSignal({"question": "Confirm dosage?"})
        entered.set()
        release.wait(5)
        return {"text": data["text"], "confirmed": True}

    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Confirmed)
        .then(
            create_step(
                id="confirm",
                input_schema=Text,
                output_schema=Confirmed,
                resume_schema=Answer,
                execute=confirm,
            )
        )
        .commit()
    )
    started = engine.start(workflow, {"text": "x"})
    results: list[Any] = []
    first = threading.Thread(
        target=lambda: results.append(engine.resume(started.run_id, {"answer": "yes"}))
    )
    first.start()

    try:
        assert entered.wait(5)
        with pytest.raises(IllegalTransitionError):
            engine.resume(started.run_id, {"answer": "yes"})
    finally:
        release.set()
        first.join(5)

    assert results[0].status == RunStatus.SUCCESS
    with pytest.raises(RunAlreadyTerminatedError):
        engine.resume(started.run_id, {"answer": "yes"})


def test_invalid_resume_input_keeps_run_suspended(engine: RunEngine) -> None:
    started = engine.start(_dosage_workflow([]), {"text": "ibuprofen"})

    with pytest.raises(ValidationError, match="resume input of step 'confirm'"):
        engine.resume(started.run_id, {"answer": True})

    assert engine.get_run(started.run_id).status == RunStatus.SUSPENDED
    assert engine.resume(started.run_id, {"answer": "no"}).result == {
        "text": "ibuprofen 200mg",
        "confirmed": False,
    }


def test_cancel_fails_a_suspended_run(engine: RunEngine) -> None:
    started = engine.start(_dosage_workflow([]), {"text": "ibuprofen"})

    cancelled = engine.cancel(started.run_id)

    assert cancelled.status == RunStatus.FAILED
    assert cancelled.error_kind == "Cancelled"
    assert cancelled.failed_stage_id == "confirm"
    with pytest.raises(RunAlreadyTerminatedError):
        engine.resume(started.run_id, {"answer": "yes"})
    with pytest.raises(RunAlreadyTerminatedError):
        engine.cancel(started.run_id)


def test_unknown_run(engine: RunEngine) -> None:
    with pytest.raises(UnknownRunError):
        engine.resume("missing", {"answer": "yes"})
    with pytest.raises(UnknownRunError):
        engine.get_run("missing")


def test_illegal_store_transition_is_rejected() -> None:
    store = RunStore()
    run = store.create(workflow_id="wf", input_data={})

    with pytest.raises(IllegalTransitionError):
        store.transition(run.run_id, RunStatus.RUNNING, expected=RunStatus.SUSPENDED)


def test_sink_receives_chunks_in_order_and_is_closed_once(engine: RunEngine) -> None:
    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .then(_echo("a", suffix="1"))
        .then(_echo("b", suffix="2"))
        .commit()
    )
    sink = CollectingSink()

    engine.start(workflow, {"text": "x"}, sink=sink)

    assert sink.chunks == ["a:x", "b:x1"]
    assert sink.close_count == 1


def test_sink_is_closed_on_suspend_and_on_resume(engine: RunEngine) -> None:
    first, second = CollectingSink(), CollectingSink()

    started = engine.start(_dosage_workflow([]), {"text": "ibuprofen"}, sink=first)
    engine.resume(started.run_id, {"answer": "yes"}, sink=second)

    assert first.chunks == ["lookup:ibuprofen"]
    assert first.close_count == 1
    assert second.close_count == 1


def test_sink_is_closed_once_when_a_run_fails_after_emitting(engine: RunEngine) -> None:
    def boom(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        raise RuntimeError("openFDA unreachable")

    workflow = (
        create_workflow(id="wf", input_schema=Text, output_schema=Text)
        .then(_echo("a"))
        .then(create_step(id="boom", input_schema=Text, output_schema=Text, execute=boom))
        .commit()
    )
    sink = CollectingSink()

    result = engine.start(workflow, {"text": "x"}, sink=sink)

    assert result.status == RunStatus.FAILED
    assert sink.chunks == ["a:x"]
    assert sink.close_count == 1


def test_registering_a_different_workflow_under_the_same_id_fails(engine: RunEngine) -> None:
    engine.register(_dosage_workflow([]))

    with pytest.raises(WorkflowDefinitionError):
        engine.register(_dosage_workflow([]))


def test_start_accepts_rebuilt_workflows_with_the_same_id(engine: RunEngine) -> None:
    first_calls: list[str] = []
    second_calls: list[str] = []
    first = engine.register(_dosage_workflow(first_calls))

    started_first = engine.start(first, {"text": "a"})
    started_second = engine.start(_dosage_workflow(second_calls), {"text": "b"})
    started_third = engine.start(_dosage_workflow(second_calls), {"text": "c"})

    for started in (started_first, started_second, started_third):
        finished = engine.resume(started.run_id, {"answer": "yes"})
        assert finished.status == RunStatus.SUCCESS
    assert first_calls == ["lookup"]
    assert second_calls == ["lookup", "lookup"]


def test_run_store_mirrors_runs_to_json(tmp_path: Path) -> None:
    path = tmp_path / "runs" / "runs.json"
    engine = RunEngine(RunStore(path))

    result = engine.start(_dosage_workflow([]), {"text": "ibuprofen"})

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved[0]["run_id"] == result.run_id
    assert saved[0]["status"] == "suspended"
