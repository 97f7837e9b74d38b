"""Medicine Agent Orchestrator.

A small workflow engine for schema-typed steps, plus the medicine workflows
built on it:
- steps, map and branch combinators, committed into immutable workflows
- runs that start, suspend for human input, resume, and terminate
- LLM agents with tools, exposed over a REST API and a CLI
"""

__version__ = "0.1.0"

from medicine_agent_orchestrator.core.config import OrchestratorConfig

__all__ = ["__version__", "OrchestratorConfig"]
