"""Local LLaMA LLM provider implementation."""

import json
import logging
import uuid
from typing import Any

from medicine_agent_orchestrator.core.config import LLMConfig
from medicine_agent_orchestrator.llm.provider import (
    Completion,
    ConfigurationError,
    LLMProvider,
    ToolCall,
)

logger = logging.getLogger(__name__)


class LLaMAProvider(LLMProvider):
    """Local LLaMA model provider implementation.

    Requires llama-cpp-python to be installed:
        pip install llama-cpp-python
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the LLaMA provider.

        Args:
            config: LLM configuration.

        Raises:
            ConfigurationError: If model path is not provided.
            ImportError: If llama-cpp-python is not installed.
        """
        if not config.llama_model_path:
            raise ConfigurationError("LLaMA model path is required (ORCHESTRATOR_LLM_LLAMA_MODEL_PATH)")

        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise ImportError(
                "llama-cpp-python is required for LLaMA provider. "
                "Install it with: pip install llama-cpp-python"
            ) from e

        self.config = config

        logger.info(f"Loading LLaMA model from: {config.llama_model_path}")

        self.llm = Llama(
            model_path=str(config.llama_model_path),
            n_ctx=config.llama_n_ctx,
            n_threads=config.llama_n_threads,
            verbose=False,
        )

        logger.info("LLaMA model loaded successfully")

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
        """Run a chat completion using the local model.

        The loaded model is fixed, so ``model`` is ignored.
        """
        params: dict[str, Any] = {
            "messages": messages,
            "max_tokens": max_tokens or 512,
            "temperature": temperature or 0.7,
        }
        if tools:
            params["tools"] = [{"type": "function", "function": spec} for spec in tools]
        if response_schema is not None:
            params["response_format"] = {"type": "json_object", "schema": response_schema}

        logger.debug(f"Generating chat completion with {len(messages)} messages")

        result = self.llm.create_chat_completion(**params)
        message = result["choices"][0]["message"]
        content = message.get("content") or ""

        calls: list[ToolCall] = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function", {})
            try:
                arguments = json.loads(function.get("arguments") or "{}")
            except json.JSONDecodeError:
                arguments = {}
            calls.append(
                ToolCall(
                    id=raw.get("id") or uuid.uuid4().hex,
                    name=function.get("name", ""),
                    arguments=arguments if isinstance(arguments, dict) else {},
                )
            )

        assistant: dict[str, Any] = {"role": "assistant", "content": content}
        if message.get("tool_calls"):
            assistant["tool_calls"] = message["tool_calls"]

        logger.debug(f"Generated {len(content)} characters")
        return Completion(text=content, tool_calls=calls, message=assistant)
