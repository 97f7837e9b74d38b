"""Core configuration for the orchestrator."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from medicine_agent_orchestrator.core.logging import configure_logging


class LLMConfig(BaseSettings):
    """Configuration for LLM providers."""

    provider: Literal["openai", "llama"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    # OpenAI settings
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="OpenAI model used by the routing and answering agents",
    )
    openai_tool_model: str = Field(
        default="gpt-4o-mini",
        description="Faster OpenAI model used by sub-agents inside tools",
    )
    openai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for OpenAI model",
    )
    openai_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Per-request timeout for OpenAI calls",
    )

    # LLaMA settings
    llama_model_path: Path | None = Field(
        default=None,
        description="Path to LLaMA model file",
    )
    llama_n_ctx: int = Field(
        default=4096,
        gt=0,
        description="Context window size for LLaMA",
    )
    llama_n_threads: int | None = Field(
        default=None,
        description="Number of threads for LLaMA (None = auto)",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_LLM_",
        env_file=".env",
        extra="ignore",
    )


class ToolsConfig(BaseSettings):
    """Configuration for external data tools and HTTP-exposed agents."""

    openfda_api_key: str | None = Field(
        default=None,
        validation_alias="OPENFDA_API_KEY",
        description="openFDA API key; tools degrade gracefully without it",
    )
    openfda_base_url: str = Field(
        default="https://api.fda.gov/drug/label.json",
        description="openFDA drug label endpoint",
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for outbound HTTP calls made by tools and agent clients",
    )
    agent_api_base_url: str = Field(
        default="http://localhost:4111",
        description="Base URL of the service exposing agents over HTTP",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_TOOLS_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


class EngineConfig(BaseSettings):
    """Configuration for the workflow run engine."""

    branch_max_workers: int = Field(
        default=4,
        gt=0,
        description="Maximum number of branch steps executed concurrently",
    )
    branch_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Deadline for all matched steps of a branch to finish",
    )
    agent_max_steps: int = Field(
        default=5,
        gt=0,
        description="Maximum model round-trips per agent call (tool calls included)",
    )
    run_store_path: Path | None = Field(
        default=None,
        description="Optional JSON file mirroring run state for inspection",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_ENGINE_",
        env_file=".env",
        extra="ignore",
    )


class OrchestratorConfig(BaseSettings):
    """Main configuration for the orchestrator."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Structured JSON logs or plain text",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )
    tools: ToolsConfig = Field(
        default_factory=ToolsConfig,
        description="Tool configuration",
    )
    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Run engine configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = "DEBUG" if self.debug else self.log_level
        configure_logging(level, fmt=self.log_format)
