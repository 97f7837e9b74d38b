"""LLM package initialization."""

from medicine_agent_orchestrator.llm.factory import LLMFactory
from medicine_agent_orchestrator.llm.provider import (
    Completion,
    ConfigurationError,
    LLMProvider,
    ToolCall,
)

__all__ = [
    "Completion",
    "ConfigurationError",
    "LLMFactory",
    "LLMProvider",
    "ToolCall",
]
