"""OpenAI LLM provider implementation."""

import json
import logging
from typing import Any

from openai import OpenAI

from medicine_agent_orchestrator.core.config import LLMConfig
from medicine_agent_orchestrator.llm.provider import (
    Completion,
    ConfigurationError,
    LLMProvider,
    ToolCall,
)

logger = logging.getLogger(__name__)


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Model produced non-JSON tool arguments", extra={"arguments": raw[:200]})
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation."""

    def __init__(self, config: LLMConfig, client: OpenAI | None = None) -> None:
        """Initialize the OpenAI provider.

        Args:
            config: LLM configuration.
            client: Pre-built client (mainly for tests).

        Raises:
            ConfigurationError: If API key is not provided.
        """
        if client is None and not config.openai_api_key:
            raise ConfigurationError("OpenAI API key is required (ORCHESTRATOR_LLM_OPENAI_API_KEY)")

        self.config = config
        self.client = client or OpenAI(
            api_key=config.openai_api_key, timeout=config.openai_timeout_seconds
        )
        self.model = config.openai_model
        self.temperature = config.openai_temperature

        logger.info(f"OpenAI provider initialized with model: {self.model}")

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
        """Run a chat completion using the OpenAI API.

        Structured output is requested with a non-strict JSON schema response
        format; the caller validates the returned object.
        """
        params: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        if tools:
            params["tools"] = [{"type": "function", "function": spec} for spec in tools]
        if response_schema is not None:
            params["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": response_schema, "strict": False},
            }

        logger.debug(
            f"Requesting completion with {len(messages)} messages",
            extra={"model": params["model"], "tools": len(tools or [])},
        )

        response = self.client.chat.completions.create(**params)
        message = response.choices[0].message

        calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=_parse_arguments(tc.function.arguments),
            )
            for tc in (message.tool_calls or [])
        ]
        content = message.content or ""

        assistant: dict[str, Any] = {"role": "assistant", "content": content}
        if message.tool_calls:
            assistant["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                }
                for tc in message.tool_calls
            ]

        logger.debug(f"Generated {len(content)} characters, {len(calls)} tool calls")
        return Completion(text=content, tool_calls=calls, message=assistant)
