"""
SQLAlchemy 2.0 ORM models for forecast persistence.

Tables owned by this service:
    forecast_records        -- One provider forecast for one future instant
    daily_accuracy_metrics  -- Per-day accuracy rollup (recomputable cache)

Tables owned by the ingestion service (read-only here):
    kline_data              -- OHLCV candles, open_time in epoch ms
    technical_indicators    -- SMA/RSI/MACD snapshots per candle
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    """Timezone-aware UTC now -- avoids deprecated datetime.utcnow()."""
    return datetime.now(timezone.utc)


# SQLite only autoincrements INTEGER PRIMARY KEY columns
_BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class ForecastRecord(Base):
    """A single provider forecast for one (asset, granularity) target instant.

    The 5-tuple (asset, granularity, generation_time, target_time, provider)
    is unique; re-inserting it is a no-op that keeps the original row.
    """

    __tablename__ = "forecast_records"

    id: Mapped[int] = mapped_column(_BigIntPK, primary_key=True, autoincrement=True)
    asset: Mapped[str] = mapped_column(String(16), nullable=False)
    granularity: Mapped[str] = mapped_column(String(8), nullable=False)
    provider: Mapped[str] = mapped_column(String(16), nullable=False)
    generation_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    target_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    predicted_price: Mapped[float] = mapped_column(Float, nullable=False)
    actual_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    accuracy_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    model_version: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "asset",
            "granularity",
            "generation_time",
            "target_time",
            "provider",
            name="uq_forecast_records_identity",
        ),
        Index(
            "ix_forecast_records_window",
            "asset",
            "granularity",
            "provider",
            "target_time",
        ),
        Index(
            "ix_forecast_records_unresolved",
            "asset",
            "granularity",
            "target_time",
            "actual_price",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ForecastRecord(id={self.id}, {self.asset}/{self.granularity}/"
            f"{self.provider}, target={self.target_time}, "
            f"price={self.predicted_price})>"
        )


class DailyAccuracyMetric(Base):
    """Accuracy rollup for one (asset, granularity, date); replaced on upsert."""

    __tablename__ = "daily_accuracy_metrics"

    id: Mapped[int] = mapped_column(_BigIntPK, primary_key=True, autoincrement=True)
    asset: Mapped[str] = mapped_column(String(16), nullable=False)
    granularity: Mapped[str] = mapped_column(String(8), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    mae: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rmse: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    accuracy_percentage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    forecasts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "asset", "granularity", "date", name="uq_daily_accuracy_metrics_key"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyAccuracyMetric({self.asset}/{self.granularity} {self.date}, "
            f"acc={self.accuracy_percentage}, n={self.forecasts_count})>"
        )


class KlineBar(Base):
    """OHLCV candle written by the ingestion service."""

    __tablename__ = "kline_data"

    id: Mapped[int] = mapped_column(_BigIntPK, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(16), nullable=False)
    interval: Mapped[str] = mapped_column(String(8), nullable=False)
    open_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    open: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    close: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[float] = mapped_column(Float, nullable=False)
    close_time: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        UniqueConstraint("symbol", "interval", "open_time", name="uq_kline_data_bar"),
        Index("ix_kline_data_lookup", "symbol", "interval", "open_time"),
    )


class TechnicalIndicator(Base):
    """Indicator snapshot per candle, written by the ingestion service."""

    __tablename__ = "technical_indicators"

    id: Mapped[int] = mapped_column(_BigIntPK, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(16), nullable=False)
    interval: Mapped[str] = mapped_column(String(8), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sma_20: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sma_50: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rsi_14: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    macd: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    macd_signal: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    macd_histogram: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "symbol", "interval", "timestamp", name="uq_technical_indicators_bar"
        ),
    )
