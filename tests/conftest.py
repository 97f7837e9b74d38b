"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from medicine_agent_orchestrator.core.config import (
    EngineConfig,
    LLMConfig,
    OrchestratorConfig,
    ToolsConfig,
)
from medicine_agent_orchestrator.llm.provider import Completion, LLMProvider, ToolCall
from medicine_agent_orchestrator.workflow.engine import RunEngine

Responder = Callable[[list[dict[str, Any]], list[dict[str, Any]] | None], Completion]


class ScriptedProvider(LLMProvider):
    """Fake provider that answers through a test-supplied responder.

    Every request is recorded as ``(messages, tools, response_schema, model)``.
    """

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.requests: list[dict[str, Any]] = []

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
        self.requests.append(
            {
                "messages": [dict(m) for m in messages],
                "tools": tools,
                "response_schema": response_schema,
                "model": model,
            }
        )
        return self.responder(messages, tools)

    @staticmethod
    def reply(text: str) -> Completion:
        return Completion(text=text, message={"role": "assistant", "content": text})

    @staticmethod
    def call_tool(name: str, arguments: dict[str, Any], call_id: str = "call-1") -> Completion:
        return Completion(
            text="",
            tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)],
            message={"role": "assistant", "content": "", "tool_calls": [{"id": call_id}]},
        )

    @staticmethod
    def system_prompt(messages: list[dict[str, Any]]) -> str:
        return next((m["content"] for m in messages if m.get("role") == "system"), "")

    @staticmethod
    def tool_results(messages: list[dict[str, Any]]) -> list[str]:
        return [m["content"] for m in messages if m.get("role") == "tool"]


@pytest.fixture
def scripted() -> type[ScriptedProvider]:
    """Provide the scripted provider class."""
    return ScriptedProvider


@pytest.fixture
def llm_config() -> LLMConfig:
    """Provide a test LLM configuration."""
    return LLMConfig(
        provider="openai",
        openai_api_key="test-key",
        openai_model="gpt-4o",
    )


@pytest.fixture
def tools_config() -> ToolsConfig:
    """Provide a tools configuration with an openFDA key."""
    return ToolsConfig(
        openfda_api_key="test-fda-key",
        agent_api_base_url="http://agents.test",
    )


@pytest.fixture
def orchestrator_config(llm_config: LLMConfig, tools_config: ToolsConfig) -> OrchestratorConfig:
    """Provide a test orchestrator configuration."""
    return OrchestratorConfig(
        log_level="DEBUG",
        debug=True,
        llm=llm_config,
        tools=tools_config,
        engine=EngineConfig(branch_timeout_seconds=5.0),
    )


@pytest.fixture
def engine() -> RunEngine:
    """Provide an engine with a short branch deadline."""
    return RunEngine(branch_timeout_seconds=5.0)
