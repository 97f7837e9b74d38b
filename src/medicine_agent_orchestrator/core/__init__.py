"""Core package initialization."""

from medicine_agent_orchestrator.core.config import (
    EngineConfig,
    LLMConfig,
    OrchestratorConfig,
    ToolsConfig,
)
from medicine_agent_orchestrator.core.logging import configure_logging

__all__ = [
    "EngineConfig",
    "LLMConfig",
    "OrchestratorConfig",
    "ToolsConfig",
    "configure_logging",
]
