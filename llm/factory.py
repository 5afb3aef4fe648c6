"""LLM client factory."""

import logging
from enum import Enum
from typing import Optional

from config.settings import Settings
from errors import ConfigurationError
from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


_CLIENTS = {
    LLMProvider.OPENAI: OpenAIClient,
    LLMProvider.ANTHROPIC: AnthropicClient,
}


def create_llm_client(settings: Settings) -> Optional[BaseLLMClient]:
    """
    Build the model client described by settings.

    Returns None when the provider has no API key; answering questions
    then fails with ConfigurationError at ask time.

    Raises:
        ConfigurationError: If the provider name is unknown
    """
    try:
        provider = LLMProvider(settings.llm_provider)
    except ValueError as e:
        raise ConfigurationError(
            f"Unsupported LLM provider: {settings.llm_provider}",
            {"provider": settings.llm_provider, "supported": [p.value for p in LLMProvider]},
        ) from e

    api_key = settings.get_llm_api_key()
    if not api_key:
        logger.warning(
            f"No API key for {provider.value}. "
            "Questions cannot be answered until one is configured."
        )
        return None

    client = _CLIENTS[provider](api_key=api_key, model=settings.llm_model)
    logger.info(f"LLM client initialized: {provider.value} ({client.get_model_name()})")
    return client
