"""The medicine workflows built on the workflow core."""

from medicine_agent_orchestrator.workflows.dosage import build_dosage_workflow
from medicine_agent_orchestrator.workflows.medical_tool import build_medical_tool_workflow
from medicine_agent_orchestrator.workflows.medicine import Intent, build_medicine_workflow
from medicine_agent_orchestrator.workflows.registry import build_workflows
from medicine_agent_orchestrator.workflows.report import build_report_workflow
from medicine_agent_orchestrator.workflows.research import build_research_workflow, format_summary

__all__ = [
    "Intent",
    "build_dosage_workflow",
    "build_medical_tool_workflow",
    "build_medicine_workflow",
    "build_report_workflow",
    "build_research_workflow",
    "build_workflows",
    "format_summary",
]
