"""
LLM Service
===========

Factory for the configured completion provider (BYO-Key: the operator
supplies an OpenAI, Anthropic or Gemini key through the environment).
Provider modules are imported lazily so only the selected SDK is loaded.
"""

import logging
from typing import Optional

from insights.config import settings
from insights.services.llm_providers.base import BaseLLMProvider

logger = logging.getLogger(__name__)


def create_provider(provider_name: Optional[str] = None) -> BaseLLMProvider:
    """Instantiate the provider named by ``provider_name`` or settings."""
    provider_type = (provider_name or settings.llm_provider).lower()

    if provider_type == "openai":
        from insights.services.llm_providers.openai import OpenAIProvider
        provider: BaseLLMProvider = OpenAIProvider()
    elif provider_type == "anthropic":
        from insights.services.llm_providers.anthropic import AnthropicProvider
        provider = AnthropicProvider()
    elif provider_type == "gemini":
        from insights.services.llm_providers.gemini import GeminiProvider
        provider = GeminiProvider()
    else:
        raise ValueError(f"Unsupported LLM provider: {provider_type}. Use 'gemini', 'openai', or 'anthropic'.")

    logger.info("LLM provider initialized: %s", provider.get_model_info())
    return provider
