"""Tests for the read-only ForecastService."""

from __future__ import annotations

from datetime import date

import pytest

from pricecast.services.forecast_service import ForecastService
from pricecast.store.prediction_store import NewForecast, PredictionStore

NOW_MS = 1_760_000_400_000
HOUR_MS = 3_600_000


def _forecast(offset_hours: int, price: float, asset: str = "ETH") -> NewForecast:
    return NewForecast(
        asset=asset,
        granularity="1h",
        provider="gpt",
        generation_time=NOW_MS - 72 * HOUR_MS,
        target_time=NOW_MS + offset_hours * HOUR_MS,
        predicted_price=price,
        model_version="o4-mini",
    )


@pytest.fixture
def store(session_factory) -> PredictionStore:
    return PredictionStore(session_factory, clock=lambda: NOW_MS)


@pytest.fixture
def service(store) -> ForecastService:
    return ForecastService(store)


async def _resolve_all(store: PredictionStore, actual: float) -> None:
    for record in await store.select_due_unresolved("ETH", "1h", limit=100):
        error = abs(record.predicted_price - actual) / actual
        await store.resolve(record.id, actual, max(0.0, 1 - error) * 100)


class TestForwardWindow:
    @pytest.mark.asyncio
    async def test_empty_is_not_an_error(self, service: ForecastService) -> None:
        assert await service.get_forward_window("ETH", "1h", "gpt") == []

    @pytest.mark.asyncio
    async def test_returns_ordered_points(self, store, service) -> None:
        await store.insert_batch([_forecast(3, 2600.0), _forecast(1, 2500.0), _forecast(-1, 2400.0)])
        await _resolve_all(store, 2450.0)

        points = await service.get_forward_window("ETH", "1h", "gpt")

        assert [p.timestamp for p in points] == [
            NOW_MS - HOUR_MS,
            NOW_MS + HOUR_MS,
            NOW_MS + 3 * HOUR_MS,
        ]
        assert points[0].actual_price == 2450.0
        assert points[1].actual_price is None

    @pytest.mark.asyncio
    async def test_capped(self, store, service) -> None:
        await store.insert_batch([_forecast(h, 2500.0) for h in range(1, 11)])
        assert len(await service.get_forward_window("ETH", "1h", "gpt", limit=4)) == 4


class TestAccuracySummary:
    @pytest.mark.asyncio
    async def test_no_data(self, service: ForecastService) -> None:
        summary = await service.get_accuracy_summary("ETH", "1h")
        assert summary.total_resolved == 0
        assert summary.overall_accuracy == 0.0

    @pytest.mark.asyncio
    async def test_computed_from_records(self, store, service) -> None:
        # 2% off (accurate), 10% off (not accurate)
        await store.insert_batch([_forecast(-2, 102.0), _forecast(-1, 110.0)])
        await _resolve_all(store, 100.0)

        summary = await service.get_accuracy_summary("ETH", "1h")

        assert summary.total_resolved == 2
        assert summary.accurate_count == 1
        assert summary.overall_accuracy == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_prefers_latest_daily_metric(self, store, service) -> None:
        await store.upsert_daily_metric("ETH", "1h", date(2025, 10, 7), 1.0, 1.0, 70.0, 10)
        await store.upsert_daily_metric("ETH", "1h", date(2025, 10, 8), 1.0, 1.0, 80.0, 20)

        summary = await service.get_accuracy_summary("ETH", "1h")

        assert summary.overall_accuracy == 80.0
        assert summary.total_resolved == 20
        assert summary.accurate_count == 16


class TestCalculateAccuracy:
    @pytest.mark.asyncio
    async def test_none_without_resolved(self, service: ForecastService) -> None:
        assert await service.calculate_accuracy() is None

    @pytest.mark.asyncio
    async def test_overall_report(self, store, service) -> None:
        await store.insert_batch([_forecast(-2, 90.0), _forecast(-1, 110.0)])
        await _resolve_all(store, 100.0)

        report = await service.calculate_accuracy("ETH")

        assert report is not None
        assert report.asset == "ETH"
        assert report.granularity is None
        assert report.total_forecasts == 2
        assert report.average_accuracy == 90.0
        assert report.mae == 10.0
        assert report.rmse == 10.0
        assert report.mape == 10.0
