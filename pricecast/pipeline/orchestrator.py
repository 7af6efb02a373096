"""
Rolling forecast generation for one (asset, granularity, provider) key.

Each ``run`` tops the key's forward window back up to ``window_size``:

1. Count distinct future target instants; nothing to do if the window is full.
2. Per outer attempt: load history, indicators, sentiment and the current
   window, build the prompt, invoke the provider (inner retries happen in
   ProviderAdapter), recover forecast entries, validate, persist.
3. Malformed or short output triggers an outer retry with a freshly built
   prompt and exponential backoff, as do unexpected store or SDK errors.
   Configuration problems fail immediately.

``run`` never raises: every outcome is a GenerationResult.
"""

from __future__ import annotations

import asyncio
import logging
import math
import numbers
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from pricecast.errors import (
    ConfigurationError,
    InsufficientResultsError,
    MalformedOutputError,
    PriceCastError,
)
from pricecast.forecasting.models import ForecastPoint, WindowEntry, expected_timestamps
from pricecast.forecasting.prompt import build_prompt_context
from pricecast.forecasting.providers.adapter import ProviderAdapter
from pricecast.forecasting.response_repair import RepairChain, is_complete, looks_truncated
from pricecast.pipeline.rolling_window import deficit, interval_duration, next_timestamp
from pricecast.protocols.sources import MarketDataSource, SentimentSource
from pricecast.settings import Settings, get_settings
from pricecast.store.prediction_store import NewForecast, PredictionStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass
class GenerationResult:
    """Outcome of one rolling-window top-up."""

    success: bool = False
    forecasts_generated: int = 0
    forecasts_requested: int = 0
    attempts: int = 0
    error: Optional[str] = None


def minimum_acceptable(requested: int, ratio: float) -> int:
    """Smallest batch accepted for *requested* forecasts (ceil of ratio)."""
    return max(1, math.ceil(requested * ratio))


def validate_entries(entries: Sequence[Any]) -> list[ForecastPoint]:
    """Type-check raw entries: finite numeric timestamp, positive finite price.

    Raises:
        MalformedOutputError: Any entry fails the check.
    """
    points: list[ForecastPoint] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise MalformedOutputError(f"Entry {index} is not an object")
        timestamp = entry.get("timestamp")
        price = entry.get("price")
        if not _is_number(timestamp) or not _is_number(price) or price <= 0:
            raise MalformedOutputError(
                f"Entry {index} has invalid timestamp/price: {entry!r}"
            )
        points.append(ForecastPoint(timestamp=int(timestamp), price=float(price)))
    return points


def prepare_batch(
    points: Sequence[ForecastPoint],
    window: Sequence[WindowEntry],
    now_ms: int,
    limit: int,
) -> list[ForecastPoint]:
    """Order by target time and drop instants that must not be written.

    Drops duplicates within the batch (first wins), instants already in the
    forward window and instants not in the future; keeps at most *limit*.
    """
    committed = {entry.target_time for entry in window}
    seen: set[int] = set()
    batch: list[ForecastPoint] = []
    for point in sorted(points, key=lambda p: p.timestamp):
        if point.timestamp in seen or point.timestamp in committed:
            continue
        if point.timestamp <= now_ms:
            continue
        seen.add(point.timestamp)
        batch.append(point)
    return batch[:limit]


class PredictionOrchestrator:
    """Keeps forward windows full, one key at a time.

    Attributes:
        store: Forecast persistence.
        market_data: Candle/indicator reader.
        sentiment: Sentiment snapshot reader (read-only).
        adapter: Provider invocation with inner retry.
    """

    def __init__(
        self,
        store: PredictionStore,
        market_data: MarketDataSource,
        sentiment: SentimentSource,
        adapter: ProviderAdapter,
        settings: Optional[Settings] = None,
        clock: Callable[[], int] = _now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        repair_chain: Optional[RepairChain] = None,
    ) -> None:
        settings = settings or get_settings()
        self.store = store
        self.market_data = market_data
        self.sentiment = sentiment
        self.adapter = adapter
        self.window_size = settings.window_size
        self.history_limit = settings.history_limit
        self.indicator_limit = settings.indicator_limit
        self.min_acceptable_ratio = settings.min_acceptable_ratio
        self.backoff_base_seconds = settings.outer_backoff_base_seconds
        self.default_outer_retries = settings.outer_max_retries
        self._clock = clock
        self._sleep = sleep
        self._repair = repair_chain or RepairChain()
        self._key_locks: dict[tuple[str, str, str], asyncio.Lock] = {}

    def _lock_for(self, asset: str, granularity: str, provider: str) -> asyncio.Lock:
        key = (asset, granularity, provider)
        if key not in self._key_locks:
            self._key_locks[key] = asyncio.Lock()
        return self._key_locks[key]

    async def run(
        self,
        asset: str,
        granularity: str,
        provider: str,
        outer_max_retries: Optional[int] = None,
    ) -> GenerationResult:
        """Top up the forward window of one key.

        Args:
            outer_max_retries: Retries after the first attempt. Defaults to
                the configured ``outer_max_retries``.

        Returns:
            GenerationResult; failures are reported, never raised.
        """
        if outer_max_retries is None:
            outer_max_retries = self.default_outer_retries

        try:
            step_ms = interval_duration(granularity)
            self.adapter.get(provider)
        except ConfigurationError as exc:
            logger.error("Cannot generate for %s (%s) via %s: %s", asset, granularity, provider, exc)
            return GenerationResult(success=False, error=str(exc))

        async with self._lock_for(asset, granularity, provider):
            try:
                existing = await self.store.count_future(
                    asset, granularity, provider, now_ms=self._clock()
                )
            except Exception as exc:
                logger.error(
                    "Cannot read forward window for %s (%s) via %s: %s",
                    asset,
                    granularity,
                    provider,
                    exc,
                    exc_info=True,
                )
                return GenerationResult(success=False, error=str(exc))
            needed = deficit(existing, self.window_size)
            logger.info(
                "%s (%s) via %s: %d future forecasts, need %d more",
                asset,
                granularity,
                provider,
                existing,
                needed,
            )
            if needed == 0:
                return GenerationResult(success=True, forecasts_generated=0)

            return await self._generate_with_retry(
                asset, granularity, provider, needed, step_ms, outer_max_retries
            )

    async def _generate_with_retry(
        self,
        asset: str,
        granularity: str,
        provider: str,
        requested: int,
        step_ms: int,
        outer_max_retries: int,
    ) -> GenerationResult:
        last_error: Optional[str] = None

        for attempt in range(outer_max_retries + 1):
            try:
                generated = await self._attempt(
                    asset, granularity, provider, requested, step_ms
                )
                return GenerationResult(
                    success=True,
                    forecasts_generated=generated,
                    forecasts_requested=requested,
                    attempts=attempt + 1,
                )
            except ConfigurationError as exc:
                logger.error("%s (%s) via %s: %s", asset, granularity, provider, exc)
                return GenerationResult(
                    success=False,
                    forecasts_requested=requested,
                    attempts=attempt + 1,
                    error=str(exc),
                )
            except PriceCastError as exc:
                last_error = str(exc)
                logger.warning(
                    "Generation attempt %d/%d for %s (%s) via %s failed: %s",
                    attempt + 1,
                    outer_max_retries + 1,
                    asset,
                    granularity,
                    provider,
                    exc,
                )
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Generation attempt %d/%d for %s (%s) via %s raised %s",
                    attempt + 1,
                    outer_max_retries + 1,
                    asset,
                    granularity,
                    provider,
                    last_error,
                    exc_info=True,
                )

            if attempt < outer_max_retries:
                wait = (2**attempt) * self.backoff_base_seconds
                logger.info("Retrying %s (%s) via %s in %.0fs", asset, granularity, provider, wait)
                await self._sleep(wait)

        logger.error(
            "Failed to generate forecasts for %s (%s) via %s after %d attempts",
            asset,
            granularity,
            provider,
            outer_max_retries + 1,
        )
        return GenerationResult(
            success=False,
            forecasts_requested=requested,
            attempts=outer_max_retries + 1,
            error=last_error,
        )

    async def _attempt(
        self,
        asset: str,
        granularity: str,
        provider: str,
        requested: int,
        step_ms: int,
    ) -> int:
        """One outer attempt. Returns the number of rows inserted."""
        bars = await self.market_data.fetch_historical_bars(
            asset, granularity, self.history_limit
        )
        if not bars:
            raise ConfigurationError(f"No historical data available for {asset} ({granularity})")

        indicators = await self.market_data.fetch_latest_indicators(
            asset, granularity, self.indicator_limit
        )
        snapshot = self.sentiment.read_snapshot()
        window = await self.store.get_forward_window(
            asset, granularity, provider, now_ms=self._clock()
        )

        start = next_timestamp(granularity, window, bars)
        context = build_prompt_context(
            asset=asset,
            granularity=granularity,
            bars=bars,
            indicators=indicators,
            sentiment=snapshot,
            window=window,
            requested_count=requested,
            start_timestamp=start,
            step_ms=step_ms,
        )

        raw = await self.adapter.invoke(provider, context)

        floor = minimum_acceptable(requested, self.min_acceptable_ratio)
        complete = is_complete(raw, min_entries=floor)
        if not complete and looks_truncated(raw, requested):
            logger.warning(
                "%s output for %s (%s) looks truncated (%d chars)",
                provider,
                asset,
                granularity,
                len(raw),
            )

        outcome = self._repair.run(raw)
        if not outcome.forecasts:
            raise MalformedOutputError(f"No forecast entries in {provider} output")
        if not complete:
            logger.warning(
                "Accepting %d entries recovered from incomplete %s output via %s",
                len(outcome.forecasts),
                provider,
                outcome.strategy,
            )

        generation_time = self._clock()
        points = prepare_batch(
            validate_entries(outcome.forecasts), window, generation_time, requested
        )
        grid = set(expected_timestamps(context))
        off_grid = sum(1 for point in points if point.timestamp not in grid)
        if off_grid:
            logger.warning(
                "%d of %d %s forecasts for %s (%s) fall off the requested grid",
                off_grid,
                len(points),
                provider,
                asset,
                granularity,
            )
        if len(points) < floor:
            raise InsufficientResultsError(len(points), requested, floor)
        if len(points) < requested:
            logger.warning(
                "%s returned %d/%d usable forecasts for %s (%s); storing partial batch",
                provider,
                len(points),
                requested,
                asset,
                granularity,
            )

        model_version = self.adapter.model_version(provider)
        records = [
            NewForecast(
                asset=asset,
                granularity=granularity,
                provider=provider,
                generation_time=generation_time,
                target_time=point.timestamp,
                predicted_price=point.price,
                model_version=model_version,
            )
            for point in points
        ]
        result = await self.store.insert_batch(records)
        logger.info(
            "Stored %d forecasts for %s (%s) via %s (%d duplicates skipped)",
            result.inserted,
            asset,
            granularity,
            provider,
            result.skipped,
        )
        return result.inserted
