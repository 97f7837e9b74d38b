"""Builds the set of workflows exposed by the server and CLI, keyed by API path."""

from __future__ import annotations

import logging

import requests

from medicine_agent_orchestrator.agents import catalog
from medicine_agent_orchestrator.agents.http_client import HttpAgentClient
from medicine_agent_orchestrator.core.config import OrchestratorConfig
from medicine_agent_orchestrator.llm.provider import LLMProvider
from medicine_agent_orchestrator.tools.medical_retrieval import medical_retrieval_tool
from medicine_agent_orchestrator.workflow.builder import Workflow
from medicine_agent_orchestrator.workflows.dosage import build_dosage_workflow
from medicine_agent_orchestrator.workflows.medical_tool import build_medical_tool_workflow
from medicine_agent_orchestrator.workflows.medicine import build_medicine_workflow
from medicine_agent_orchestrator.workflows.report import build_report_workflow
from medicine_agent_orchestrator.workflows.research import build_research_workflow

logger = logging.getLogger(__name__)


def build_workflows(
    config: OrchestratorConfig,
    provider: LLMProvider | None = None,
    *,
    http_client: HttpAgentClient | None = None,
    session: requests.Session | None = None,
) -> dict[str, Workflow]:
    """Commit every workflow and return them by path.

    Workflows that need an LLM are skipped when ``provider`` is None; the
    medical-tool and dosage workflows never need one.
    """

    client = http_client or HttpAgentClient(
        config.tools.agent_api_base_url,
        timeout_seconds=config.tools.request_timeout_seconds,
        session=session,
    )
    workflows: dict[str, Workflow] = {
        "medical-tool": build_medical_tool_workflow(client),
        "dosage": build_dosage_workflow(medical_retrieval_tool(config.tools, session=session)),
    }

    if provider is None:
        logger.warning("No LLM provider configured; agent workflows are disabled")
        return workflows

    agents = catalog.build_agents(
        provider,
        llm=config.llm,
        tools=config.tools,
        engine=config.engine,
        session=session,
    )
    workflows["medicine"] = build_medicine_workflow(agents)
    workflows["research"] = build_research_workflow(agents[catalog.FULL_RESEARCH])
    workflows["report"] = build_report_workflow(
        agents[catalog.FULL_RESEARCH], agents[catalog.REPORT]
    )
    return workflows
