"""
Uniform, retried invocation over the registered provider bindings.

Inner retry policy: any provider failure (SDK/network error, empty text,
text with no JSON-shaped payload) is a TransientProviderError and is
retried up to ``max_retries`` times with linearly increasing delay
(attempt * ``retry_delay_seconds``). Exhaustion re-raises the typed error.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, Mapping

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from pricecast.errors import ConfigurationError, TransientProviderError
from pricecast.forecasting.models import PromptContext
from pricecast.forecasting.providers.base import ForecastProvider
from pricecast.forecasting.providers.throttle import ProviderThrottle

logger = logging.getLogger(__name__)

_JSON_SHAPE_RE = re.compile(r"\{[\s\S]*\}")


class ProviderAdapter:
    """Invoke a provider by key with bounded retry and per-provider spacing.

    Attributes:
        max_retries: Retries after the first attempt.
        retry_delay_seconds: Linear backoff step.
    """

    def __init__(
        self,
        providers: Mapping[str, ForecastProvider],
        max_retries: int = 3,
        retry_delay_seconds: float = 2.0,
        min_spacing_seconds: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._providers = dict(providers)
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._throttles = {
            key: ProviderThrottle(min_spacing_seconds, sleep=sleep)
            for key in self._providers
        }

    @property
    def available(self) -> list[str]:
        return sorted(self._providers)

    def get(self, provider: str) -> ForecastProvider:
        try:
            return self._providers[provider]
        except KeyError:
            raise ConfigurationError(
                f"Provider {provider!r} is not configured "
                f"(available: {', '.join(self.available) or 'none'})"
            ) from None

    def model_version(self, provider: str) -> str:
        return self.get(provider).model_version

    async def invoke(self, provider: str, context: PromptContext) -> str:
        """Return raw response text from *provider* for *context*.

        Raises:
            ConfigurationError: Provider not registered.
            TransientProviderError: All attempts failed.
        """
        binding = self.get(provider)
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientProviderError),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_incrementing(
                start=self.retry_delay_seconds, increment=self.retry_delay_seconds
            ),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return await retrying(self._call_once, binding, context)
        except TransientProviderError as exc:
            exc.attempts = self.max_retries + 1
            logger.error(
                "%s failed for %s (%s) after %d attempts: %s",
                binding.name,
                context.asset,
                context.granularity,
                exc.attempts,
                exc,
            )
            raise

    async def _call_once(self, binding: ForecastProvider, context: PromptContext) -> str:
        async with self._throttles[binding.name]:
            try:
                text = await binding.generate(context.prompt, context.system_instruction)
            except (TransientProviderError, ConfigurationError):
                raise
            except Exception as exc:
                raise TransientProviderError(
                    binding.name, f"{type(exc).__name__}: {exc}"
                ) from exc

        if not text or not text.strip():
            raise TransientProviderError(binding.name, "empty response")
        if not _JSON_SHAPE_RE.search(text):
            logger.debug("%s response without JSON: %.200s", binding.name, text)
            raise TransientProviderError(
                binding.name, "response does not contain a JSON object"
            )
        return text

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Provider call failed (attempt %d/%d): %s -- retrying in %.0fs",
            retry_state.attempt_number,
            self.max_retries + 1,
            exc,
            delay,
        )
