"""Two-phase research workflow producing structured findings and a Markdown summary."""

from __future__ import annotations

import logging
from typing import Any

from medicine_agent_orchestrator.agents.agent import Agent, AgentError
from medicine_agent_orchestrator.workflow.builder import Workflow, create_workflow
from medicine_agent_orchestrator.workflow.schema import Field, Schema
from medicine_agent_orchestrator.workflow.step import Step, StepContext, create_step

logger = logging.getLogger(__name__)

RESEARCH_WORKFLOW_ID = "research-workflow"

ResearchInput = Schema({"input": Field("string")})
ResearchOutput = Schema({"summary": Field("string"), "researchData": Field("any")})

SearchResult = Schema(
    {
        "title": Field("string"),
        "url": Field("string"),
        "relevance": Field("string"),
    }
)
Learning = Schema(
    {
        "learning": Field("string"),
        "followUpQuestions": Field("array", items=Field("string")),
        "source": Field("string"),
    }
)
ResearchFindings = Schema(
    {
        "queries": Field("array", items=Field("string")),
        "searchResults": Field("array", items=Field("object", schema=SearchResult)),
        "learnings": Field("array", items=Field("object", schema=Learning)),
        "completedQueries": Field("array", items=Field("string")),
        "phase": Field("string", required=False),
    }
)


def research_prompt(topic: str) -> str:
    return (
        f'Research the following topic thoroughly using the two-phase process: "{topic}".\n\n'
        "Phase 1: Search for 2-3 initial queries about this topic\n"
        "Phase 2: Search for follow-up questions from the learnings (then STOP)\n\n"
        "Return findings in JSON format with queries, searchResults, learnings, "
        "completedQueries, and phase."
    )


def run_research(agent: Agent, topic: str) -> dict[str, Any]:
    """Ask ``agent`` for structured findings on ``topic``.

    Raises:
        AgentError: The agent failed or its answer did not match ``ResearchFindings``.
    """

    response = agent.generate(
        [{"role": "user", "content": research_prompt(topic)}],
        output_schema=ResearchFindings,
    )
    return response.object or {}


def _numbered(lines: list[str]) -> str:
    return "".join(f"{i}. {line}\n" for i, line in enumerate(lines, start=1))


def format_summary(topic: str, findings: dict[str, Any]) -> str:
    summary = f'Research completed on "{topic}":\n\n'

    if findings.get("queries"):
        summary += "## Queries\n" + _numbered(findings["queries"]) + "\n"

    if findings.get("searchResults"):
        summary += "## Search Results\n"
        summary += _numbered(
            [f"[{r['title']}]({r['url']}) ({r['relevance']})" for r in findings["searchResults"]]
        )
        summary += "\n"

    if findings.get("learnings"):
        summary += "## Key Learnings\n"
        for i, item in enumerate(findings["learnings"], start=1):
            summary += f"{i}. {item['learning']}\n   - Source: {item['source']}\n"
            if item.get("followUpQuestions"):
                summary += f"   - Follow-up: {'; '.join(item['followUpQuestions'])}\n"
        summary += "\n"

    if findings.get("completedQueries"):
        summary += "## Completed Queries\n" + _numbered(findings["completedQueries"]) + "\n"

    if findings.get("phase"):
        summary += f"## Phase\n{findings['phase']}\n"

    return summary


def research_step(agent: Agent) -> Step:
    def execute(data: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
        try:
            findings = run_research(agent, data["input"])
        except AgentError as e:
            logger.warning(
                "Research failed",
                extra={"run_id": ctx.run_id, "stage_id": ctx.stage_id, "error": str(e)},
            )
            return {"summary": f"Error: {e}", "researchData": {"error": str(e)}}

        summary = format_summary(data["input"], findings)
        ctx.emit(summary)
        return {"summary": summary, "researchData": findings}

    return create_step(
        id="research",
        description="Research a topic and summarize the findings",
        input_schema=ResearchInput,
        output_schema=ResearchOutput,
        execute=execute,
    )


def build_research_workflow(agent: Agent) -> Workflow:
    return (
        create_workflow(
            id=RESEARCH_WORKFLOW_ID,
            description="Two-phase medical research with a Markdown summary",
            input_schema=ResearchInput,
            output_schema=ResearchOutput,
        )
        .then(research_step(agent))
        .commit()
    )
