"""Workflow definition: combinators and commit.

Usage::

    workflow = (
        create_workflow(id="medicine-workflow", input_schema=In, output_schema=Out)
        .then(classify_step)
        .map(attach_prompt)
        .branch([(is_compare, compare_step), (is_research, research_step)])
        .map(collapse)
        .commit()
    )

``commit`` seals the pipeline and checks it. The returned :class:`Workflow` is
immutable and holds no per-run state, so one instance serves any number of
concurrent runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from medicine_agent_orchestrator.workflow.errors import (
    WorkflowCommittedError,
    WorkflowDefinitionError,
)
from medicine_agent_orchestrator.workflow.schema import Schema, compatibility_problems
from medicine_agent_orchestrator.workflow.stages import (
    BranchStage,
    MapFn,
    MapStage,
    Predicate,
    Stage,
    StepStage,
)
from medicine_agent_orchestrator.workflow.step import Step


@dataclass(frozen=True, slots=True)
class Workflow:
    id: str
    input_schema: Schema
    output_schema: Schema
    stages: tuple[Stage, ...]
    description: str = ""

    def find_step(self, step_id: str) -> Step | None:
        for stage in self.stages:
            for step in stage.steps():
                if step.id == step_id:
                    return step
        return None

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "input_schema": self.input_schema.to_json_schema(),
            "output_schema": self.output_schema.to_json_schema(),
            "stages": [stage.id for stage in self.stages],
        }


class WorkflowBuilder:
    """Accumulates stages until :meth:`commit` is called."""

    def __init__(
        self, *, id: str, input_schema: Schema, output_schema: Schema, description: str = ""
    ) -> None:
        if not id.strip():
            raise WorkflowDefinitionError("Workflow id must not be empty")
        self._id = id
        self._input_schema = input_schema
        self._output_schema = output_schema
        self._description = description
        self._stages: list[Stage] = []
        self._committed = False
        self._map_count = 0
        self._branch_count = 0

    def _append(self, stage: Stage) -> WorkflowBuilder:
        if self._committed:
            raise WorkflowCommittedError(
                f"Workflow '{self._id}' is committed; cannot append stage '{stage.id}'"
            )
        self._stages.append(stage)
        return self

    def then(self, step: Step) -> WorkflowBuilder:
        return self._append(StepStage(step))

    def map(self, fn: MapFn, *, id: str | None = None) -> WorkflowBuilder:
        self._map_count += 1
        return self._append(MapStage(id=id or f"map-{self._map_count}", fn=fn))

    def branch(
        self,
        routes: Iterable[tuple[Predicate, Step]],
        *,
        id: str | None = None,
        allow_empty: bool = False,
    ) -> WorkflowBuilder:
        self._branch_count += 1
        route_tuple = tuple(routes)
        if not route_tuple:
            raise WorkflowDefinitionError("A branch needs at least one route")
        return self._append(
            BranchStage(
                id=id or f"branch-{self._branch_count}",
                routes=route_tuple,
                allow_empty=allow_empty,
            )
        )

    def commit(self) -> Workflow:
        if self._committed:
            raise WorkflowCommittedError(f"Workflow '{self._id}' is already committed")
        if not self._stages:
            raise WorkflowDefinitionError(f"Workflow '{self._id}' has no stages")

        _check_unique_ids(self._stages)
        _check_adjacent_schemas(self._input_schema, self._output_schema, self._stages)

        self._committed = True
        return Workflow(
            id=self._id,
            input_schema=self._input_schema,
            output_schema=self._output_schema,
            stages=tuple(self._stages),
            description=self._description,
        )


def create_workflow(
    *, id: str, input_schema: Schema, output_schema: Schema, description: str = ""
) -> WorkflowBuilder:
    return WorkflowBuilder(
        id=id, input_schema=input_schema, output_schema=output_schema, description=description
    )


def _check_unique_ids(stages: Sequence[Stage]) -> None:
    seen: set[str] = set()
    for stage in stages:
        ids = [stage.id]
        if isinstance(stage, BranchStage):
            ids.extend(step.id for step in stage.steps())
        for stage_id in ids:
            if stage_id in seen:
                raise WorkflowDefinitionError(f"Duplicate stage id: '{stage_id}'")
            seen.add(stage_id)


def _check_adjacent_schemas(
    input_schema: Schema, output_schema: Schema, stages: Sequence[Stage]
) -> None:
    # Map stages have no declared output, so the edge after a map is checked at run time.
    produced: Schema | None = input_schema
    for stage in stages:
        if produced is not None:
            for consumed in stage.input_schemas():
                problems = compatibility_problems(produced, consumed)
                if problems:
                    raise WorkflowDefinitionError(
                        f"Stage '{stage.id}' cannot consume its input: " + "; ".join(problems)
                    )
        produced = stage.output_schema

    if produced is not None:
        problems = compatibility_problems(produced, output_schema)
        if problems:
            raise WorkflowDefinitionError(
                "Last stage output does not match the workflow output: " + "; ".join(problems)
            )
