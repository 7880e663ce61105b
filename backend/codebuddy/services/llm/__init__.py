"""LLM provider factory."""

import logging

from codebuddy.core.config import settings
from codebuddy.services.llm.base import BaseLLMProvider

logger = logging.getLogger(__name__)


def get_llm_provider() -> BaseLLMProvider:
    """Factory function that returns the configured LLM provider."""
    if settings.llm_provider == "openai":
        from openai import AsyncOpenAI
        from codebuddy.services.llm.openai import OpenAIProvider
        logger.info(f"Using OpenAI provider, API key {'is set' if settings.openai_api_key else 'is not set'}")
        return OpenAIProvider(
            AsyncOpenAI(api_key=settings.openai_api_key),
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    elif settings.llm_provider == "gemini":
        from google import genai
        from codebuddy.services.llm.gemini import GeminiProvider
        logger.info(f"Using Gemini provider, API key {'is set' if settings.gemini_api_key else 'is not set'}")
        return GeminiProvider(
            genai.Client(api_key=settings.gemini_api_key),
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
