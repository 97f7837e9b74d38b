"""Workflow steps backed by agents."""

from __future__ import annotations

from typing import Any

from medicine_agent_orchestrator.agents.agent import Agent
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import Step, StepContext, create_step

# Extra fields (e.g. a routing intent) travel alongside the prompt untouched.
AgentStepInput = Schema({"prompt": Field("string")}, allow_extra=True)
AgentStepOutput = Schema({"text": Field("string")})


def agent_step(agent: Agent, *, id: str | None = None) -> Step:
    """Wrap ``agent`` as a step taking ``{prompt}`` and returning ``{text}``.

    The answer is also emitted to the run's stream. Agent failures surface as
    ``StepExecutionError`` through :meth:`Step.run`.
    """

    def execute(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        response = agent.generate([{"role": "user", "content": data["prompt"]}])
        ctx.emit(response.text)
        return {"text": response.text}

    return create_step(
        id=id or agent.name,
        input_schema=AgentStepInput,
        output_schema=AgentStepOutput,
        execute=execute,
        description=agent.description,
    )
