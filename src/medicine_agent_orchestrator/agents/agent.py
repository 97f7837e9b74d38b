"""LLM-backed agents.

An agent is a configured capability, not a class hierarchy: a provider plus
instructions, an optional model override and a set of tools. ``generate`` runs
a bounded loop: ask the model, execute any tool calls it requests, feed the
results back, and stop at the first reply without tool calls.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from medicine_agent_orchestrator.llm.provider import LLMProvider, ToolCall
from medicine_agent_orchestrator.tools.base import Tool
from medicine_agent_orchestrator.workflow.errors import ValidationError
from medicine_agent_orchestrator.workflow.schema import Schema, validate

logger = logging.getLogger(__name__)

Messages = str | Sequence[dict[str, Any]]


class AgentError(Exception):
    """An agent invocation failed (provider error, bad structured output, step limit)."""

    def __init__(self, agent_name: str, message: str) -> None:
        self.agent_name = agent_name
        super().__init__(f"Agent '{agent_name}': {message}")


@dataclass(frozen=True, slots=True)
class AgentResponse:
    text: str
    object: dict[str, Any] | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


def _normalize_messages(messages: Messages) -> list[dict[str, Any]]:
    if isinstance(messages, str):
        return [{"role": "user", "content": messages}]
    return [dict(m) for m in messages]


def _parse_object(text: str) -> object:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    return json.loads(cleaned)


class Agent:
    def __init__(
        self,
        *,
        name: str,
        instructions: str,
        provider: LLMProvider,
        description: str = "",
        model: str | None = None,
        tools: Sequence[Tool] = (),
        max_steps: int = 5,
    ) -> None:
        self.name = name
        self.instructions = instructions.strip()
        self.provider = provider
        self.description = description
        self.model = model
        self.tools = {tool.id: tool for tool in tools}
        self.max_steps = max_steps

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, tools={sorted(self.tools)!r})"

    def generate(
        self,
        messages: Messages,
        *,
        output_schema: Schema | None = None,
        max_steps: int | None = None,
    ) -> AgentResponse:
        """Answer ``messages``, optionally as an object matching ``output_schema``.

        Raises:
            AgentError: provider failure, invalid structured output, or the
                step limit was reached while the model kept calling tools.
        """

        history: list[dict[str, Any]] = []
        if self.instructions:
            history.append({"role": "system", "content": self.instructions})
        history.extend(_normalize_messages(messages))

        specs = [tool.spec() for tool in self.tools.values()] or None
        response_schema = output_schema.to_json_schema() if output_schema is not None else None
        calls_made: list[ToolCall] = []
        limit = max_steps or self.max_steps

        for step in range(limit):
            try:
                completion = self.provider.complete(
                    history,
                    tools=specs,
                    response_schema=response_schema,
                    model=self.model,
                )
            except Exception as e:
                raise AgentError(self.name, f"provider call failed: {e}") from e

            if not completion.tool_calls:
                logger.debug(
                    "Agent answered",
                    extra={"agent": self.name, "steps": step + 1, "tool_calls": len(calls_made)},
                )
                obj = self._structured(completion.text, output_schema)
                return AgentResponse(text=completion.text, object=obj, tool_calls=calls_made)

            history.append(completion.message)
            for call in completion.tool_calls:
                calls_made.append(call)
                result = self._call_tool(call)
                history.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(result, ensure_ascii=False),
                    }
                )

        raise AgentError(self.name, f"no final answer after {limit} steps")

    def _structured(self, text: str, schema: Schema | None) -> dict[str, Any] | None:
        if schema is None:
            return None
        try:
            return validate(schema, _parse_object(text))
        except json.JSONDecodeError as e:
            raise AgentError(self.name, f"structured output is not JSON: {e}") from e
        except ValidationError as e:
            raise AgentError(self.name, f"structured output does not match schema: {e}") from e

    def _call_tool(self, call: ToolCall) -> dict[str, Any]:
        tool = self.tools.get(call.name)
        if tool is None:
            logger.warning("Model requested unknown tool", extra={"agent": self.name, "tool": call.name})
            return {"error": f"Unknown tool: {call.name}"}
        logger.info("Calling tool", extra={"agent": self.name, "tool": call.name})
        try:
            return tool.execute(call.arguments)
        except ValidationError as e:
            return {"error": str(e)}
