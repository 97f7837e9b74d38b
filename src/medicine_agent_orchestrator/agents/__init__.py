"""Agent invocation: LLM-backed agents, HTTP-exposed agents, and agent steps."""

from medicine_agent_orchestrator.agents.agent import Agent, AgentError, AgentResponse
from medicine_agent_orchestrator.agents.http_client import HttpAgentClient
from medicine_agent_orchestrator.agents.steps import agent_step

__all__ = [
    "Agent",
    "AgentError",
    "AgentResponse",
    "HttpAgentClient",
    "agent_step",
]
