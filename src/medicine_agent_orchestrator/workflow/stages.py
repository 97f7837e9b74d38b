"""Pipeline stages produced by the workflow combinators.

A compiled workflow is an ordered tuple of stages. Stages are plain data; the
run engine decides how to execute each kind.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import Step

Predicate = Callable[[dict[str, Any]], bool]
MapFn = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True, slots=True)
class StepStage:
    step: Step

    @property
    def id(self) -> str:
        return self.step.id

    @property
    def output_schema(self) -> Schema | None:
        return self.step.output_schema

    def input_schemas(self) -> list[Schema]:
        return [self.step.input_schema]

    def steps(self) -> list[Step]:
        return [self.step]


@dataclass(frozen=True, slots=True)
class MapStage:
    """A pure reshaping function between stages. It has no schema of its own."""

    id: str
    fn: MapFn

    @property
    def output_schema(self) -> Schema | None:
        return None

    def input_schemas(self) -> list[Schema]:
        return []

    def steps(self) -> list[Step]:
        return []


@dataclass(frozen=True, slots=True)
class BranchStage:
    """Conditional fan-out: every step whose predicate matches runs.

    This is not an if/elif chain. Callers needing exactly-one routing must make
    their predicates mutually exclusive.
    """

    id: str
    routes: tuple[tuple[Predicate, Step], ...]
    allow_empty: bool = False

    @property
    def output_schema(self) -> Schema:
        return Schema(
            {
                step.id: Field("object", required=False, schema=step.output_schema)
                for _, step in self.routes
            }
        )

    def input_schemas(self) -> list[Schema]:
        return [step.input_schema for _, step in self.routes]

    def steps(self) -> list[Step]:
        return [step for _, step in self.routes]

    def evaluate(self, value: dict[str, Any]) -> list[Step]:
        """Return matched steps in route order."""

        return [step for predicate, step in self.routes if predicate(value)]


Stage = StepStage | MapStage | BranchStage
