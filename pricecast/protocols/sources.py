"""Collaborator contracts for the forecast pipeline.

The orchestrator and resolver depend on these protocols rather than on
the ingestion tables or the sentiment file directly. ``MarketDataRepository``
and ``SentimentStore`` are the production implementations; tests pass
in-memory fakes.

Both protocols are @runtime_checkable so callers can validate an
implementation via isinstance() without importing concrete classes.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from pricecast.forecasting.models import HistoricalBar, IndicatorSnapshot


@runtime_checkable
class MarketDataSource(Protocol):
    """Read side of the price ingestion service."""

    async def fetch_historical_bars(
        self, asset: str, granularity: str, limit: int
    ) -> list[HistoricalBar]:
        """Trailing candles for the key, oldest first (at most *limit*)."""
        ...

    async def fetch_latest_indicators(
        self, asset: str, granularity: str, limit: int = 10
    ) -> list[IndicatorSnapshot]:
        """Latest indicator snapshots, newest first."""
        ...

    async def fetch_observed_price(
        self, asset: str, granularity: str, target_time: int, tolerance_ms: int
    ) -> Optional[float]:
        """Close of the candle nearest *target_time* within *tolerance_ms*.

        Returns:
            The observed close price, or None when no candle lies within
            the tolerance in either direction.
        """
        ...


@runtime_checkable
class SentimentSource(Protocol):
    """Read-only access to the latest sentiment snapshot."""

    def read_snapshot(self) -> Optional[dict[str, Any]]:
        """Latest snapshot (``{"data": {...}}``) or None when unavailable."""
        ...
