"""Looks up a drug by calling the medical tool agent over HTTP."""

from __future__ import annotations

from typing import Any

from medicine_agent_orchestrator.agents.agent import AgentError
from medicine_agent_orchestrator.agents.http_client import HttpAgentClient
from medicine_agent_orchestrator.workflow.builder import Workflow, create_workflow
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import StepContext, create_step

MEDICAL_TOOL_WORKFLOW_ID = "test-medical-tool-workflow"
MEDICAL_TOOL_AGENT_ID = "medicalToolAgent"

MedicalToolInput = Schema(
    {"drug_name": Field("string", description="The name of the drug to look up.")}
)
MedicalToolOutput = Schema({"info": Field("string")})


def build_medical_tool_workflow(
    client: HttpAgentClient, *, agent_id: str = MEDICAL_TOOL_AGENT_ID
) -> Workflow:
    def execute(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        response = client.generate(agent_id, [{"role": "user", "content": data["drug_name"]}])
        info = (response.object or {}).get("info")
        if not isinstance(info, str):
            raise AgentError(agent_id, "Invalid or missing tool output in agent response")
        ctx.emit(info)
        return {"info": info}

    step = create_step(
        id="run-medical-agent-via-api",
        description="Call the medical tool agent over HTTP",
        input_schema=MedicalToolInput,
        output_schema=MedicalToolOutput,
        execute=execute,
    )

    return (
        create_workflow(
            id=MEDICAL_TOOL_WORKFLOW_ID,
            description="A workflow that calls an agent over HTTP to test the medical retrieval tool.",
            input_schema=MedicalToolInput,
            output_schema=MedicalToolOutput,
        )
        .then(step)
        .commit()
    )
