"""Selects the chat-completion backend from configuration."""

import logging

from medicine_agent_orchestrator.core.config import LLMConfig
from medicine_agent_orchestrator.llm.llama_provider import LLaMAProvider
from medicine_agent_orchestrator.llm.openai_provider import OpenAIProvider
from medicine_agent_orchestrator.llm.provider import ConfigurationError, LLMProvider

logger = logging.getLogger(__name__)

_PROVIDERS = {
    "openai": OpenAIProvider,
    "llama": LLaMAProvider,
}


class LLMFactory:
    """Builds the provider named by ``LLMConfig.provider``."""

    @staticmethod
    def create(config: LLMConfig) -> LLMProvider:
        """Create the configured provider.

        Raises:
            ConfigurationError: The provider is missing its key or model path.
            ValueError: Unknown provider name.
        """
        provider_cls = _PROVIDERS.get(config.provider)
        if provider_cls is None:
            raise ValueError(f"Unsupported LLM provider: {config.provider}")

        logger.info("Creating LLM provider", extra={"provider": config.provider})
        return provider_cls(config)

    @staticmethod
    def create_optional(config: LLMConfig) -> LLMProvider | None:
        """Like :meth:`create`, but returns None when the provider is not configured.

        Lets the CLI and server still offer the workflows that need no model.
        """
        try:
            return LLMFactory.create(config)
        except ConfigurationError as e:
            logger.warning("LLM provider unavailable", extra={"error": str(e)})
            return None
