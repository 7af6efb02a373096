"""
Async persistence for forecast records and daily accuracy metrics.

Idempotency lives in the database: ``forecast_records`` is unique on
(asset, granularity, generation_time, target_time, provider) and every
insert is ``INSERT ... ON CONFLICT DO NOTHING``, so a restarted process
regenerating the same deficit cannot duplicate or overwrite a row.
``daily_accuracy_metrics`` is a recomputable cache and is upserted by key.

Both PostgreSQL (production) and SQLite (tests, local runs) are supported;
the dialect-specific ``insert`` construct is picked per session.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricecast.constants import ACCURATE_ERROR_THRESHOLD, DAY_MS, DISPLAY_WINDOW_LIMIT
from pricecast.db.models import DailyAccuracyMetric, ForecastRecord, _utcnow
from pricecast.forecasting.models import WindowEntry

logger = logging.getLogger(__name__)

_IDENTITY_COLUMNS = ["asset", "granularity", "generation_time", "target_time", "provider"]
_METRIC_KEY_COLUMNS = ["asset", "granularity", "date"]


def _now_ms() -> int:
    return int(time.time() * 1000)


def day_bounds(day: date) -> tuple[int, int]:
    """[start, end) of a UTC calendar day in epoch ms."""
    start = int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)
    return start, start + DAY_MS


def utc_day(epoch_ms: int) -> date:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).date()


@dataclass
class NewForecast:
    """Values for one forecast record about to be inserted."""

    asset: str
    granularity: str
    provider: str
    generation_time: int
    target_time: int
    predicted_price: float
    model_version: str

    def as_row(self) -> dict:
        return {
            "asset": self.asset,
            "granularity": self.granularity,
            "provider": self.provider,
            "generation_time": self.generation_time,
            "target_time": self.target_time,
            "predicted_price": self.predicted_price,
            "model_version": self.model_version,
        }


@dataclass
class InsertResult:
    inserted: bool


@dataclass
class BatchInsertResult:
    inserted: int
    skipped: int


@dataclass
class AccuracyStats:
    """Error statistics over a set of resolved forecasts.

    ``accurate_count`` counts forecasts within 5% of the observed price.
    All averages are 0.0 when ``count`` is 0.
    """

    count: int = 0
    average_accuracy: float = 0.0
    mae: float = 0.0
    rmse: float = 0.0
    mape: float = 0.0
    accurate_count: int = 0


@dataclass
class DisplayPoint:
    timestamp: int
    predicted_price: float
    actual_price: Optional[float]


def summarize(rows: Iterable[tuple[float, float, Optional[float]]]) -> AccuracyStats:
    """Aggregate (predicted, actual, accuracy_score) triples."""
    count = 0
    abs_sum = sq_sum = pct_sum = acc_sum = 0.0
    accurate = 0
    for predicted, actual, score in rows:
        error = abs(predicted - actual)
        count += 1
        abs_sum += error
        sq_sum += error * error
        pct_sum += error / actual * 100
        acc_sum += score if score is not None else 0.0
        if error / actual <= ACCURATE_ERROR_THRESHOLD:
            accurate += 1

    if count == 0:
        return AccuracyStats()
    return AccuracyStats(
        count=count,
        average_accuracy=acc_sum / count,
        mae=abs_sum / count,
        rmse=math.sqrt(sq_sum / count),
        mape=pct_sum / count,
        accurate_count=accurate,
    )


class PredictionStore:
    """Forecast and metric persistence over an async session factory.

    Args:
        session_factory: ``async_sessionmaker`` from ``pricecast.db.postgres.init_db``.
        clock: Returns "now" in epoch ms (injectable for tests).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @staticmethod
    def _insert_for(session: AsyncSession, model):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _insert_one(self, session: AsyncSession, record: NewForecast) -> bool:
        stmt = (
            self._insert_for(session, ForecastRecord)
            .values(**record.as_row(), created_at=_utcnow())
            .on_conflict_do_nothing(index_elements=_IDENTITY_COLUMNS)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def insert_if_absent(self, record: NewForecast) -> InsertResult:
        """Insert *record* unless its identity tuple already exists."""
        async with self._session_factory() as session:
            inserted = await self._insert_one(session, record)
            await session.commit()
        if not inserted:
            logger.debug(
                "Forecast already stored: %s/%s/%s target=%d",
                record.asset,
                record.granularity,
                record.provider,
                record.target_time,
            )
        return InsertResult(inserted=inserted)

    async def insert_batch(self, records: Sequence[NewForecast]) -> BatchInsertResult:
        """Insert *records* in one transaction; duplicates are skipped."""
        inserted = 0
        async with self._session_factory() as session:
            for record in records:
                if await self._insert_one(session, record):
                    inserted += 1
            await session.commit()

        skipped = len(records) - inserted
        if skipped:
            logger.info("Skipped %d duplicate forecast(s) on insert", skipped)
        return BatchInsertResult(inserted=inserted, skipped=skipped)

    async def resolve(
        self, record_id: int, actual_price: float, accuracy_score: float
    ) -> bool:
        """Set the observed price and score once. Returns False if already set."""
        stmt = (
            update(ForecastRecord)
            .where(ForecastRecord.id == record_id, ForecastRecord.actual_price.is_(None))
            .values(actual_price=actual_price, accuracy_score=accuracy_score)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def upsert_daily_metric(
        self,
        asset: str,
        granularity: str,
        day: date,
        mae: float,
        rmse: float,
        accuracy: float,
        count: int,
    ) -> None:
        values = {
            "mae": mae,
            "rmse": rmse,
            "accuracy_percentage": accuracy,
            "forecasts_count": count,
            "updated_at": _utcnow(),
        }
        async with self._session_factory() as session:
            stmt = self._insert_for(session, DailyAccuracyMetric).values(
                asset=asset, granularity=granularity, date=day, **values
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=_METRIC_KEY_COLUMNS, set_=values
            )
            await session.execute(stmt)
            await session.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _key_filter(self, asset: str, granularity: str, provider: str):
        return and_(
            ForecastRecord.asset == asset,
            ForecastRecord.granularity == granularity,
            ForecastRecord.provider == provider,
        )

    async def count_future(
        self, asset: str, granularity: str, provider: str, now_ms: Optional[int] = None
    ) -> int:
        """Distinct future target instants for the key."""
        now_ms = self._clock() if now_ms is None else now_ms
        stmt = select(func.count(func.distinct(ForecastRecord.target_time))).where(
            self._key_filter(asset, granularity, provider),
            ForecastRecord.target_time > now_ms,
        )
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def get_forward_window(
        self, asset: str, granularity: str, provider: str, now_ms: Optional[int] = None
    ) -> list[WindowEntry]:
        """Future forecasts for the key, latest generation per target, ordered."""
        now_ms = self._clock() if now_ms is None else now_ms
        stmt = (
            select(
                ForecastRecord.target_time,
                ForecastRecord.predicted_price,
            )
            .where(
                self._key_filter(asset, granularity, provider),
                ForecastRecord.target_time > now_ms,
            )
            .order_by(ForecastRecord.target_time, ForecastRecord.generation_time)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        latest: dict[int, float] = {}
        for target_time, price in rows:
            latest[target_time] = price  # later generations overwrite
        return [
            WindowEntry(target_time=t, predicted_price=p) for t, p in latest.items()
        ]

    async def select_due_unresolved(
        self, asset: str, granularity: str, limit: int, now_ms: Optional[int] = None
    ) -> list[ForecastRecord]:
        """Unresolved records whose target has passed, oldest first."""
        now_ms = self._clock() if now_ms is None else now_ms
        stmt = (
            select(ForecastRecord)
            .where(
                ForecastRecord.asset == asset,
                ForecastRecord.granularity == granularity,
                ForecastRecord.actual_price.is_(None),
                ForecastRecord.target_time <= now_ms,
            )
            .order_by(ForecastRecord.target_time, ForecastRecord.id)
            .limit(limit)
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def _resolved_rows(self, *criteria) -> list[tuple[float, float, Optional[float]]]:
        stmt = select(
            ForecastRecord.predicted_price,
            ForecastRecord.actual_price,
            ForecastRecord.accuracy_score,
        ).where(ForecastRecord.actual_price.is_not(None), *criteria)
        async with self._session_factory() as session:
            return [tuple(row) for row in (await session.execute(stmt)).all()]

    async def compute_daily_stats(
        self, asset: str, granularity: str, day: date
    ) -> AccuracyStats:
        """Statistics over resolved records targeting the UTC *day*."""
        start, end = day_bounds(day)
        rows = await self._resolved_rows(
            ForecastRecord.asset == asset,
            ForecastRecord.granularity == granularity,
            ForecastRecord.target_time >= start,
            ForecastRecord.target_time < end,
        )
        return summarize(rows)

    async def compute_overall_stats(
        self, asset: Optional[str] = None, granularity: Optional[str] = None
    ) -> AccuracyStats:
        criteria = []
        if asset:
            criteria.append(ForecastRecord.asset == asset)
        if granularity:
            criteria.append(ForecastRecord.granularity == granularity)
        return summarize(await self._resolved_rows(*criteria))

    async def get_latest_daily_metric(
        self, asset: str, granularity: str
    ) -> Optional[DailyAccuracyMetric]:
        stmt = (
            select(DailyAccuracyMetric)
            .where(
                DailyAccuracyMetric.asset == asset,
                DailyAccuracyMetric.granularity == granularity,
            )
            .order_by(DailyAccuracyMetric.date.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def get_display_window(
        self,
        asset: str,
        granularity: str,
        provider: str,
        now_ms: Optional[int] = None,
        limit: int = DISPLAY_WINDOW_LIMIT,
    ) -> list[DisplayPoint]:
        """Future forecasts plus trailing-day resolved ones.

        One point per target instant (latest generation), ordered by time.
        """
        now_ms = self._clock() if now_ms is None else now_ms
        latest = (
            select(
                ForecastRecord.target_time.label("target_time"),
                func.max(ForecastRecord.generation_time).label("generation_time"),
            )
            .where(
                self._key_filter(asset, granularity, provider),
                or_(
                    ForecastRecord.target_time > now_ms,
                    and_(
                        ForecastRecord.target_time > now_ms - DAY_MS,
                        ForecastRecord.actual_price.is_not(None),
                    ),
                ),
            )
            .group_by(ForecastRecord.target_time)
            .subquery()
        )
        stmt = (
            select(
                ForecastRecord.target_time,
                ForecastRecord.predicted_price,
                ForecastRecord.actual_price,
            )
            .join(
                latest,
                and_(
                    ForecastRecord.target_time == latest.c.target_time,
                    ForecastRecord.generation_time == latest.c.generation_time,
                ),
            )
            .where(self._key_filter(asset, granularity, provider))
            .order_by(ForecastRecord.target_time)
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            DisplayPoint(timestamp=t, predicted_price=p, actual_price=a)
            for t, p, a in rows
        ]

    async def find_duplicate_targets(
        self, asset: str, granularity: str, provider: str, now_ms: Optional[int] = None
    ) -> list[tuple[int, int]]:
        """Future target instants held by more than one generation.

        Returns:
            (target_time, row_count) pairs, ordered by target_time.
        """
        now_ms = self._clock() if now_ms is None else now_ms
        stmt = (
            select(ForecastRecord.target_time, func.count())
            .where(
                self._key_filter(asset, granularity, provider),
                ForecastRecord.target_time > now_ms,
            )
            .group_by(ForecastRecord.target_time)
            .having(func.count() > 1)
            .order_by(ForecastRecord.target_time)
        )
        async with self._session_factory() as session:
            return [(t, n) for t, n in (await session.execute(stmt)).all()]
