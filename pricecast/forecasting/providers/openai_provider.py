"""
OpenAI binding using the Responses API of the official SDK.
"""

from __future__ import annotations

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from pricecast.errors import TransientProviderError
from pricecast.forecasting.providers.base import ForecastProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(ForecastProvider):
    """GPT forecasting backend (reasoning model via ``responses.create``)."""

    name = "gpt"

    def __init__(
        self,
        api_key: str,
        model: str = "o4-mini",
        reasoning_effort: str = "medium",
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        super().__init__(model)
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.reasoning_effort = reasoning_effort

    async def generate(self, prompt: str, system_instruction: str) -> str:
        try:
            response = await self.client.responses.create(
                model=self.model,
                reasoning={"effort": self.reasoning_effort},
                input=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": prompt},
                ],
            )
        except OpenAIError as exc:
            raise TransientProviderError(self.name, f"API error: {exc}") from exc

        if getattr(response, "status", None) == "incomplete":
            logger.warning(
                "OpenAI response incomplete: %s",
                getattr(response, "incomplete_details", None),
            )
        return response.output_text or ""
