"""
Anthropic binding using the Messages API of the official SDK.
"""

from __future__ import annotations

import logging
from typing import Optional

from anthropic import AnthropicError, AsyncAnthropic

from pricecast.errors import TransientProviderError
from pricecast.forecasting.providers.base import ForecastProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(ForecastProvider):
    """Claude forecasting backend."""

    name = "claude"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-7-sonnet-latest",
        max_tokens: int = 8000,
        temperature: float = 0.7,
        client: Optional[AsyncAnthropic] = None,
    ) -> None:
        super().__init__(model)
        self.client = client or AsyncAnthropic(api_key=api_key)
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate(self, prompt: str, system_instruction: str) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_instruction,
                messages=[{"role": "user", "content": prompt}],
            )
        except AnthropicError as exc:
            raise TransientProviderError(self.name, f"API error: {exc}") from exc

        if response.stop_reason == "max_tokens":
            logger.warning("Claude output hit max_tokens=%d", self.max_tokens)

        # text may arrive split across several content blocks
        return "".join(
            block.text for block in response.content if block.type == "text"
        )
