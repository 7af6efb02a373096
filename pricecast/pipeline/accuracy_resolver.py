"""
Reconcile matured forecasts against observed prices.

For each unresolved forecast whose target instant has passed, the nearest
observed candle close within one granularity interval (either direction)
becomes the actual price, and the record gets an accuracy score:

    accuracy = max(0, 1 - |predicted - actual| / actual) * 100

Records without an observed price stay unresolved and are retried on the
next pass; there is no give-up deadline. After each pass the daily
accuracy rollup is recomputed for today and for every day touched.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from pricecast.constants import DEFAULT_RESOLUTION_LIMIT
from pricecast.pipeline.rolling_window import interval_duration
from pricecast.protocols.sources import MarketDataSource
from pricecast.store.prediction_store import PredictionStore, utc_day

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def accuracy_score(predicted: float, actual: float) -> float:
    """Percentage accuracy in [0, 100]; 0 when the error exceeds the price."""
    if actual <= 0:
        return 0.0
    return max(0.0, 1.0 - abs(predicted - actual) / actual) * 100.0


@dataclass
class ResolutionResult:
    """Outcome of one resolution pass for a key."""

    resolved_count: int = 0
    pending_count: int = 0
    metric_dates: list[date] = field(default_factory=list)


class AccuracyResolver:
    """Fills in actual prices and maintains daily accuracy metrics."""

    def __init__(
        self,
        store: PredictionStore,
        market_data: MarketDataSource,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.market_data = market_data
        self._clock = clock

    async def resolve_pending(
        self,
        asset: str,
        granularity: str,
        limit_per_pass: int = DEFAULT_RESOLUTION_LIMIT,
    ) -> ResolutionResult:
        """Resolve matured forecasts for one (asset, granularity).

        Raises:
            ConfigurationError: Unknown granularity.
        """
        tolerance = interval_duration(granularity)
        now_ms = self._clock()
        due = await self.store.select_due_unresolved(
            asset, granularity, limit_per_pass, now_ms=now_ms
        )

        result = ResolutionResult()
        touched: set[date] = {utc_day(now_ms)}

        for record in due:
            actual = await self.market_data.fetch_observed_price(
                asset, granularity, record.target_time, tolerance
            )
            if actual is None:
                result.pending_count += 1
                continue

            score = accuracy_score(record.predicted_price, actual)
            if await self.store.resolve(record.id, actual, score):
                result.resolved_count += 1
                touched.add(utc_day(record.target_time))

        for day in sorted(touched):
            stats = await self.store.compute_daily_stats(asset, granularity, day)
            if stats.count == 0:
                continue
            await self.store.upsert_daily_metric(
                asset,
                granularity,
                day,
                mae=stats.mae,
                rmse=stats.rmse,
                accuracy=stats.average_accuracy,
                count=stats.count,
            )
            result.metric_dates.append(day)

        if due:
            logger.info(
                "Resolved %d/%d matured forecasts for %s (%s); %d awaiting prices",
                result.resolved_count,
                len(due),
                asset,
                granularity,
                result.pending_count,
            )
        return result
