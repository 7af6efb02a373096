"""
Forecasting provider bindings and the adapter that invokes them.

The provider set is closed: Gemini, GPT (OpenAI) and Claude (Anthropic).
``build_providers`` is the only place that maps provider keys to
concrete bindings; a provider without an API key is simply not registered.
"""

from __future__ import annotations

import logging

from pricecast.constants import PROVIDER_CLAUDE, PROVIDER_GEMINI, PROVIDER_GPT
from pricecast.forecasting.providers.adapter import ProviderAdapter
from pricecast.forecasting.providers.anthropic_provider import AnthropicProvider
from pricecast.forecasting.providers.base import ForecastProvider
from pricecast.forecasting.providers.gemini import GeminiProvider
from pricecast.forecasting.providers.openai_provider import OpenAIProvider
from pricecast.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def build_providers(settings: Settings | None = None) -> dict[str, ForecastProvider]:
    """Instantiate a binding for every provider that has credentials."""
    settings = settings or get_settings()
    providers: dict[str, ForecastProvider] = {}

    if settings.gemini_api_key:
        providers[PROVIDER_GEMINI] = GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            temperature=settings.llm_temperature,
            max_output_tokens=settings.gemini_max_output_tokens,
        )
    if settings.openai_api_key:
        providers[PROVIDER_GPT] = OpenAIProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            reasoning_effort=settings.openai_reasoning_effort,
        )
    if settings.anthropic_api_key:
        providers[PROVIDER_CLAUDE] = AnthropicProvider(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            temperature=settings.llm_temperature,
        )

    missing = [p for p in settings.providers if p not in providers]
    if missing:
        logger.warning("No API key configured for providers: %s", ", ".join(missing))
    return providers


def build_adapter(settings: Settings | None = None) -> ProviderAdapter:
    settings = settings or get_settings()
    return ProviderAdapter(
        build_providers(settings),
        max_retries=settings.provider_max_retries,
        retry_delay_seconds=settings.provider_retry_delay_seconds,
        min_spacing_seconds=settings.provider_min_spacing_seconds,
    )


__all__ = [
    "AnthropicProvider",
    "ForecastProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "ProviderAdapter",
    "build_adapter",
    "build_providers",
]
