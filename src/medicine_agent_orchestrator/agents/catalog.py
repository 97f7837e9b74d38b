"""The medicine agents, configured per use site.

Every agent is the same :class:`Agent` capability with different instructions,
model and tools.
"""

from __future__ import annotations

import requests

from medicine_agent_orchestrator.agents.agent import Agent
from medicine_agent_orchestrator.core.config import EngineConfig, LLMConfig, ToolsConfig
from medicine_agent_orchestrator.llm.provider import LLMProvider
from medicine_agent_orchestrator.tools.comparison import comparison_tool
from medicine_agent_orchestrator.tools.medical_retrieval import medical_retrieval_tool
from medicine_agent_orchestrator.tools.pricing_lookup import pricing_lookup_tool

CLASSIFIER = "classifier-agent"
MEDICINE_INFO = "medicine-info-agent"
PRODUCT_LOOKUP = "product-lookup-agent"
COMPARISON = "comparison-agent"
RESEARCH = "research-agent"
MEDICAL_TOOL = "medical-tool-agent"
FULL_RESEARCH = "full-research-agent"
REPORT = "report-agent"

CLASSIFIER_INSTRUCTIONS = """
You are a classifier. Categorize the query into one of:
- "general_need"
- "product_lookup"
- "compare"
- "research"
Answer with the category only.
"""

FULL_RESEARCH_INSTRUCTIONS = """
You are a medical research assistant. Research topics in two phases:
Phase 1: search for 2-3 initial queries about the topic.
Phase 2: search for follow-up questions from the learnings, then stop.
Use the medical-retrieval tool for every search and cite the source of each learning.
"""


def build_agents(
    provider: LLMProvider,
    *,
    llm: LLMConfig | None = None,
    tools: ToolsConfig | None = None,
    engine: EngineConfig | None = None,
    session: requests.Session | None = None,
) -> dict[str, Agent]:
    llm = llm or LLMConfig()
    tools = tools or ToolsConfig()
    max_steps = (engine or EngineConfig()).agent_max_steps

    retrieval = medical_retrieval_tool(tools, session=session)
    pricing = pricing_lookup_tool(provider, model=llm.openai_tool_model)
    comparison = comparison_tool()

    agents = [
        Agent(
            name=CLASSIFIER,
            description="Classifies queries into general_need, product_lookup, compare, or research",
            instructions=CLASSIFIER_INSTRUCTIONS,
            provider=provider,
            max_steps=1,
        ),
        Agent(
            name=MEDICINE_INFO,
            description="Provides info based on general health needs (pain relief, cold, etc.)",
            instructions="Provide precise medical information for general needs.",
            provider=provider,
            tools=[retrieval],
            max_steps=max_steps,
        ),
        Agent(
            name=PRODUCT_LOOKUP,
            description="Fetches detailed info about a specific drug/product",
            instructions=(
                "You are a specialized assistant. Your only job is to look up drug cost, "
                "availability, and alternatives."
            ),
            provider=provider,
            tools=[pricing],
            max_steps=max_steps,
        ),
        Agent(
            name=COMPARISON,
            description="Compares multiple drugs side by side",
            instructions=(
                "Return a comparison of the given products. Call comparison-tool with every "
                "product named in the query."
            ),
            provider=provider,
            tools=[comparison],
            max_steps=max_steps,
        ),
        Agent(
            name=RESEARCH,
            description="Fetches research articles and clinical trials related to a medicine",
            instructions="Summarize clinical trial and research information with citations.",
            provider=provider,
            tools=[retrieval],
            max_steps=max_steps,
        ),
        Agent(
            name=MEDICAL_TOOL,
            description="Answers drug questions strictly through the medical-retrieval tool",
            instructions=(
                "You are a specialized assistant. Your only job is to use the medical-retrieval "
                "tool to answer the user's query about a drug."
            ),
            provider=provider,
            model=llm.openai_tool_model,
            tools=[retrieval],
            max_steps=max_steps,
        ),
        Agent(
            name=FULL_RESEARCH,
            description="Two-phase research with structured findings",
            instructions=FULL_RESEARCH_INSTRUCTIONS,
            provider=provider,
            tools=[retrieval],
            max_steps=max(max_steps, 15),
        ),
        Agent(
            name=REPORT,
            description="Writes a report from structured research findings",
            instructions="Write a clear, well-organized report in Markdown from the research given.",
            provider=provider,
        ),
    ]
    return {agent.name: agent for agent in agents}
