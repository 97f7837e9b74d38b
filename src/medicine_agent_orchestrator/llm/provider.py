"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class ConfigurationError(ValueError):
    """A provider was selected but its required configuration is missing."""


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Completion:
    """One model response.

    ``message`` is the assistant message in chat format, ready to be appended to
    the conversation when the model asked for tool calls.
    """

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    message: dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    This interface allows pluggable LLM backends (OpenAI, LLaMA, etc.)
    """

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        response_schema: dict[str, Any] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        """Run one chat completion.

        Args:
            messages: Chat messages with 'role' and 'content' (and tool fields).
            tools: Function specs with 'name', 'description' and JSON-schema 'parameters'.
            response_schema: JSON schema the reply must follow (structured output).
            model: Override of the provider's default model.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.

        Returns:
            The model's reply, possibly requesting tool calls.
        """
        pass
