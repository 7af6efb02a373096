"""
Gemini binding using the google-genai SDK.

Output budget is the usual failure mode here: long forecast lists hit
``max_output_tokens`` and come back cut mid-entry, so the budget is
generous and truncation is logged for diagnosis. Repair happens upstream.
"""

from __future__ import annotations

import logging
from typing import Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from pricecast.errors import TransientProviderError
from pricecast.forecasting.providers.base import ForecastProvider

logger = logging.getLogger(__name__)


class GeminiProvider(ForecastProvider):
    """Gemini forecasting backend.

    Attributes:
        model: Gemini model name.
        temperature: Sampling temperature.
        max_output_tokens: Output budget per request.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-pro-preview-05-06",
        temperature: float = 0.7,
        max_output_tokens: int = 32768,
        client: Optional[genai.Client] = None,
    ) -> None:
        super().__init__(model)
        self.client = client or genai.Client(api_key=api_key)
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def _config(self, system_instruction: str) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=self.temperature,
            top_p=0.95,
            top_k=40,
            max_output_tokens=self.max_output_tokens,
        )

    async def generate(self, prompt: str, system_instruction: str) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=self._config(system_instruction),
            )
        except genai_errors.APIError as exc:
            raise TransientProviderError(self.name, f"API error: {exc}") from exc

        text = response.text or ""
        candidates = response.candidates or []
        finish_reason = candidates[0].finish_reason if candidates else None
        if finish_reason == types.FinishReason.MAX_TOKENS:
            logger.warning(
                "Gemini output hit max_output_tokens=%d (%d chars returned)",
                self.max_output_tokens,
                len(text),
            )
        return text
