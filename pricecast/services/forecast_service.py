"""
ForecastService -- read-only views over stored forecasts for display layers.

Responsibility:
    1. The forward window of a key as shown to users (future forecasts plus
       the trailing day of resolved ones).
    2. A per-key accuracy summary, preferring the latest daily rollup.
    3. Overall error statistics across any subset of keys.

An empty or short window is a normal state and returns an empty list.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field

from pricecast.constants import DISPLAY_WINDOW_LIMIT
from pricecast.store.prediction_store import PredictionStore

logger = logging.getLogger(__name__)


class ForecastPointDTO(BaseModel):
    """One displayed forecast; ``actual_price`` is set once resolved."""

    timestamp: int = Field(..., description="Target instant (epoch ms)")
    predicted_price: float
    actual_price: Optional[float] = None


class AccuracySummary(BaseModel):
    overall_accuracy: float = Field(0.0, description="Overall accuracy percentage")
    total_resolved: int = 0
    accurate_count: int = 0


class AccuracyReport(BaseModel):
    """Error statistics over resolved forecasts (optionally filtered)."""

    asset: Optional[str] = None
    granularity: Optional[str] = None
    total_forecasts: int = 0
    average_accuracy: float = 0.0
    mae: float = 0.0
    rmse: float = 0.0
    mape: float = 0.0


class ForecastService:
    """Serving-side queries built on PredictionStore."""

    def __init__(self, store: PredictionStore) -> None:
        self.store = store

    async def get_forward_window(
        self,
        asset: str,
        granularity: str,
        provider: str,
        limit: int = DISPLAY_WINDOW_LIMIT,
    ) -> list[ForecastPointDTO]:
        points = await self.store.get_display_window(
            asset, granularity, provider, limit=limit
        )
        return [
            ForecastPointDTO(
                timestamp=p.timestamp,
                predicted_price=p.predicted_price,
                actual_price=p.actual_price,
            )
            for p in points
        ]

    async def get_accuracy_summary(self, asset: str, granularity: str) -> AccuracySummary:
        """Latest daily rollup for the key, else computed from resolved records.

        The daily rollup stores an average accuracy score; computed summaries
        count forecasts within 5% of the observed price as accurate.
        """
        metric = await self.store.get_latest_daily_metric(asset, granularity)
        if metric is not None:
            accuracy = metric.accuracy_percentage or 0.0
            return AccuracySummary(
                overall_accuracy=accuracy,
                total_resolved=metric.forecasts_count,
                accurate_count=round(metric.forecasts_count * accuracy / 100),
            )

        stats = await self.store.compute_overall_stats(asset, granularity)
        if stats.count == 0:
            return AccuracySummary()
        return AccuracySummary(
            overall_accuracy=stats.accurate_count / stats.count * 100,
            total_resolved=stats.count,
            accurate_count=stats.accurate_count,
        )

    async def calculate_accuracy(
        self, asset: Optional[str] = None, granularity: Optional[str] = None
    ) -> Optional[AccuracyReport]:
        """Overall statistics, or None when nothing has resolved yet."""
        stats = await self.store.compute_overall_stats(asset, granularity)
        if stats.count == 0:
            logger.info("No resolved forecasts for accuracy calculation")
            return None
        return AccuracyReport(
            asset=asset,
            granularity=granularity,
            total_forecasts=stats.count,
            average_accuracy=round(stats.average_accuracy, 2),
            mae=round(stats.mae, 2),
            rmse=round(stats.rmse, 2),
            mape=round(stats.mape, 2),
        )
