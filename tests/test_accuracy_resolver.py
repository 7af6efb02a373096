"""
Tests for AccuracyResolver and the kline-backed observed price lookup.

A forecast whose target passed an hour ago, with a candle
inside the tolerance window, resolves with the right score and is not
selected again on the next pass.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select

from pricecast.db.models import DailyAccuracyMetric, ForecastRecord, KlineBar
from pricecast.ingest.market_data import MarketDataRepository
from pricecast.pipeline.accuracy_resolver import AccuracyResolver, accuracy_score
from pricecast.store.prediction_store import NewForecast, PredictionStore, utc_day

NOW_MS = 1_760_000_400_000
HOUR_MS = 3_600_000


async def _add_bars(session_factory, *bars: tuple[int, float]) -> None:
    async with session_factory() as session:
        for open_time, close in bars:
            session.add(
                KlineBar(
                    symbol="BTC",
                    interval="1h",
                    open_time=open_time,
                    open=close,
                    high=close,
                    low=close,
                    close=close,
                    volume=1.0,
                )
            )
        await session.commit()


def _forecast(target_time: int, price: float) -> NewForecast:
    return NewForecast(
        asset="BTC",
        granularity="1h",
        provider="claude",
        generation_time=NOW_MS - 48 * HOUR_MS,
        target_time=target_time,
        predicted_price=price,
        model_version="claude-test",
    )


@pytest.fixture
def store(session_factory) -> PredictionStore:
    return PredictionStore(session_factory, clock=lambda: NOW_MS)


@pytest.fixture
def resolver(session_factory, store) -> AccuracyResolver:
    return AccuracyResolver(store, MarketDataRepository(session_factory), clock=lambda: NOW_MS)


class TestAccuracyScore:
    def test_exact_match(self) -> None:
        assert accuracy_score(100.0, 100.0) == 100.0

    def test_five_percent_off(self) -> None:
        assert accuracy_score(95.0, 100.0) == pytest.approx(95.0)
        assert accuracy_score(105.0, 100.0) == pytest.approx(95.0)

    def test_clamped_at_zero(self) -> None:
        assert accuracy_score(250.0, 100.0) == 0.0

    def test_bounded(self) -> None:
        for predicted in (0.01, 50.0, 99.0, 101.0, 1e6):
            assert 0.0 <= accuracy_score(predicted, 100.0) <= 100.0


class TestObservedPrice:
    @pytest.mark.asyncio
    async def test_nearest_within_tolerance(self, session_factory) -> None:
        target = NOW_MS - HOUR_MS
        await _add_bars(
            session_factory,
            (target - HOUR_MS, 90.0),
            (target + 10 * 60_000, 101.0),
            (target + HOUR_MS, 110.0),
        )
        repo = MarketDataRepository(session_factory)
        assert await repo.fetch_observed_price("BTC", "1h", target, HOUR_MS) == 101.0

    @pytest.mark.asyncio
    async def test_none_outside_tolerance(self, session_factory) -> None:
        target = NOW_MS - HOUR_MS
        await _add_bars(session_factory, (target - 3 * HOUR_MS, 90.0))
        repo = MarketDataRepository(session_factory)
        assert await repo.fetch_observed_price("BTC", "1h", target, HOUR_MS) is None

    @pytest.mark.asyncio
    async def test_history_oldest_first(self, session_factory) -> None:
        await _add_bars(session_factory, (3 * HOUR_MS, 3.0), (1 * HOUR_MS, 1.0), (2 * HOUR_MS, 2.0))
        repo = MarketDataRepository(session_factory)
        bars = await repo.fetch_historical_bars("BTC", "1h", limit=2)
        assert [b.close for b in bars] == [2.0, 3.0]


class TestResolvePending:
    @pytest.mark.asyncio
    async def test_resolves_and_excludes_on_next_pass(
        self, session_factory, store, resolver
    ) -> None:
        """A due forecast with a nearby candle resolves once and is not reselected."""
        target = NOW_MS - HOUR_MS
        await store.insert_if_absent(_forecast(target, price=98.0))
        await _add_bars(session_factory, (target, 100.0))

        result = await resolver.resolve_pending("BTC", "1h")

        assert result.resolved_count == 1
        assert result.pending_count == 0
        async with session_factory() as session:
            record = (await session.execute(select(ForecastRecord))).scalar_one()
        assert record.actual_price == 100.0
        assert record.accuracy_score == pytest.approx(98.0)

        again = await resolver.resolve_pending("BTC", "1h")
        assert again.resolved_count == 0
        assert await store.select_due_unresolved("BTC", "1h", limit=10) == []

    @pytest.mark.asyncio
    async def test_missing_price_stays_pending(self, store, resolver) -> None:
        await store.insert_if_absent(_forecast(NOW_MS - 2 * HOUR_MS, price=98.0))

        result = await resolver.resolve_pending("BTC", "1h")

        assert result.resolved_count == 0
        assert result.pending_count == 1
        assert result.metric_dates == []
        assert len(await store.select_due_unresolved("BTC", "1h", limit=10)) == 1

    @pytest.mark.asyncio
    async def test_future_forecasts_untouched(self, session_factory, store, resolver) -> None:
        await store.insert_if_absent(_forecast(NOW_MS + HOUR_MS, price=98.0))
        await _add_bars(session_factory, (NOW_MS + HOUR_MS, 100.0))

        result = await resolver.resolve_pending("BTC", "1h")

        assert result.resolved_count == 0
        assert result.pending_count == 0

    @pytest.mark.asyncio
    async def test_daily_metric_written(self, session_factory, store, resolver) -> None:
        t1, t2 = NOW_MS - 2 * HOUR_MS, NOW_MS - HOUR_MS
        await store.insert_batch([_forecast(t1, 90.0), _forecast(t2, 110.0)])
        await _add_bars(session_factory, (t1, 100.0), (t2, 100.0))

        result = await resolver.resolve_pending("BTC", "1h")

        assert result.metric_dates == [utc_day(NOW_MS)]
        async with session_factory() as session:
            metric = (await session.execute(select(DailyAccuracyMetric))).scalar_one()
        assert metric.forecasts_count == 2
        assert metric.mae == pytest.approx(10.0)
        assert metric.rmse == pytest.approx(10.0)
        assert metric.accuracy_percentage == pytest.approx(90.0)

    @pytest.mark.asyncio
    async def test_limit_per_pass(self, session_factory, store, resolver) -> None:
        targets = [NOW_MS - k * HOUR_MS for k in range(1, 6)]
        await store.insert_batch([_forecast(t, 100.0) for t in targets])
        await _add_bars(session_factory, *[(t, 100.0) for t in targets])

        first = await resolver.resolve_pending("BTC", "1h", limit_per_pass=2)
        second = await resolver.resolve_pending("BTC", "1h", limit_per_pass=10)

        assert first.resolved_count == 2
        assert second.resolved_count == 3
