"""Schema-typed tools available to agents.

``pricing_lookup_tool`` lives in :mod:`medicine_agent_orchestrator.tools.pricing_lookup`
and is not re-exported here because it is itself built on an agent.
"""

from medicine_agent_orchestrator.tools.base import Tool
from medicine_agent_orchestrator.tools.comparison import comparison_tool
from medicine_agent_orchestrator.tools.medical_retrieval import medical_retrieval_tool

__all__ = [
    "Tool",
    "comparison_tool",
    "medical_retrieval_tool",
]
