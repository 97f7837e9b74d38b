"""Schema-typed tools callable by agents.

A tool validates its input before running and its output after. Tools that
reach the network are expected to catch their own failures and report them in
their typed output, so an agent calling a tool always gets a well-formed answer.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from medicine_agent_orchestrator.workflow.errors import ValidationError
from medicine_agent_orchestrator.workflow.schema import Schema, validate

ToolFn = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True, slots=True)
class Tool:
    id: str
    description: str
    input_schema: Schema
    output_schema: Schema
    fn: ToolFn

    def execute(self, input_data: Mapping[str, Any]) -> dict[str, Any]:
        try:
            value = validate(self.input_schema, input_data)
        except ValidationError as e:
            raise e.with_context(f"input of tool '{self.id}'") from None
        out = self.fn(value)
        try:
            return validate(self.output_schema, out)
        except ValidationError as e:
            raise e.with_context(f"output of tool '{self.id}'") from None

    def spec(self) -> dict[str, Any]:
        """Function spec handed to the LLM provider."""

        return {
            "name": self.id,
            "description": self.description,
            "parameters": self.input_schema.to_json_schema(),
        }
