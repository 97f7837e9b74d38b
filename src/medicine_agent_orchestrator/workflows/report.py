"""Research-then-report workflow.

Failures of either agent do not fail the run; the step reports
``completed: False`` instead.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from medicine_agent_orchestrator.agents.agent import Agent, AgentError
from medicine_agent_orchestrator.workflow.builder import Workflow, create_workflow
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import StepContext, create_step
from medicine_agent_orchestrator.workflows.research import run_research

logger = logging.getLogger(__name__)

REPORT_WORKFLOW_ID = "generate-report-workflow"

ReportInput = Schema({"input": Field("string")})
ReportOutput = Schema(
    {
        "report": Field("string", required=False),
        "completed": Field("boolean"),
    }
)


def build_report_workflow(researcher: Agent, writer: Agent) -> Workflow:
    def execute(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        try:
            findings = run_research(researcher, data["input"])
            response = writer.generate(
                f"Generate a report based on this research: {json.dumps(findings)}"
            )
        except AgentError:
            logger.exception(
                "Error generating report",
                extra={"run_id": ctx.run_id, "stage_id": ctx.stage_id},
            )
            return {"completed": False}

        ctx.emit(response.text)
        return {"report": response.text, "completed": True}

    step = create_step(
        id="research-and-report",
        description="Research a topic and write a report from the findings",
        input_schema=ReportInput,
        output_schema=ReportOutput,
        execute=execute,
    )

    return (
        create_workflow(
            id=REPORT_WORKFLOW_ID,
            description="Researches a topic and writes a Markdown report",
            input_schema=ReportInput,
            output_schema=ReportOutput,
        )
        .then(step)
        .commit()
    )
