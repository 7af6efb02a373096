"""
Read-only access to the candle and indicator tables maintained by the
price ingestion service.

``kline_data.open_time`` and ``technical_indicators.timestamp`` are epoch
milliseconds, the same unit as forecast target times.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricecast.db.models import KlineBar, TechnicalIndicator
from pricecast.forecasting.models import HistoricalBar, IndicatorSnapshot

logger = logging.getLogger(__name__)


class MarketDataRepository:
    """SQLAlchemy implementation of ``MarketDataSource``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_historical_bars(
        self, asset: str, granularity: str, limit: int
    ) -> list[HistoricalBar]:
        """Trailing *limit* candles, oldest first."""
        stmt = (
            select(KlineBar)
            .where(KlineBar.symbol == asset, KlineBar.interval == granularity)
            .order_by(KlineBar.open_time.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()

        bars = [
            HistoricalBar(
                timestamp=row.open_time,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=row.volume,
            )
            for row in reversed(rows)
        ]
        logger.debug("Loaded %d bars for %s (%s)", len(bars), asset, granularity)
        return bars

    async def fetch_latest_indicators(
        self, asset: str, granularity: str, limit: int = 10
    ) -> list[IndicatorSnapshot]:
        stmt = (
            select(TechnicalIndicator)
            .where(
                TechnicalIndicator.symbol == asset,
                TechnicalIndicator.interval == granularity,
            )
            .order_by(TechnicalIndicator.timestamp.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            IndicatorSnapshot(
                timestamp=row.timestamp,
                sma_20=row.sma_20,
                sma_50=row.sma_50,
                rsi_14=row.rsi_14,
                macd=row.macd,
                macd_signal=row.macd_signal,
                macd_histogram=row.macd_histogram,
            )
            for row in rows
        ]

    async def fetch_observed_price(
        self, asset: str, granularity: str, target_time: int, tolerance_ms: int
    ) -> Optional[float]:
        """Close of the candle nearest *target_time*, within *tolerance_ms*.

        Ties between two equally distant candles resolve to the earlier one.
        """
        distance = func.abs(KlineBar.open_time - target_time)
        stmt = (
            select(KlineBar.close)
            .where(
                KlineBar.symbol == asset,
                KlineBar.interval == granularity,
                KlineBar.open_time.between(
                    target_time - tolerance_ms, target_time + tolerance_ms
                ),
            )
            .order_by(distance, KlineBar.open_time)
            .limit(1)
        )
        async with self._session_factory() as session:
            price = (await session.execute(stmt)).scalar_one_or_none()
        return price
