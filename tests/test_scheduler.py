"""Tests for PredictionScheduler tick sequencing and pauses."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from pricecast.errors import ConfigurationError
from pricecast.pipeline.accuracy_resolver import ResolutionResult
from pricecast.pipeline.orchestrator import GenerationResult
from pricecast.pipeline.scheduler import PredictionScheduler
from pricecast.settings import Settings


def _settings(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        assets=["BTC", "ETH"],
        granularities=["1h", "4h"],
        providers=["gemini"],
        pause_between_calls_seconds=5.0,
        pause_between_assets_seconds=10.0,
    )
    values.update(overrides)
    return Settings(**values)


class TestGenerationTick:
    @pytest.mark.asyncio
    async def test_visits_every_key_with_pauses(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(
            return_value=GenerationResult(success=True, forecasts_generated=3)
        )
        sleep = AsyncMock()
        scheduler = PredictionScheduler(orchestrator, MagicMock(), _settings(), sleep=sleep)

        tick = await scheduler.run_generation_tick()

        assert [c.args for c in orchestrator.run.await_args_list] == [
            ("BTC", "1h", "gemini"),
            ("BTC", "4h", "gemini"),
            ("ETH", "1h", "gemini"),
            ("ETH", "4h", "gemini"),
        ]
        assert [c.args[0] for c in sleep.await_args_list] == [5.0, 10.0, 5.0]
        assert tick.keys_processed == 4
        assert tick.forecasts_generated == 12
        assert tick.success

    @pytest.mark.asyncio
    async def test_failures_collected(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(
            side_effect=[
                GenerationResult(success=True, forecasts_generated=24),
                GenerationResult(success=False, error="provider down"),
            ]
        )
        scheduler = PredictionScheduler(
            orchestrator, MagicMock(), _settings(assets=["SOL"]), sleep=AsyncMock()
        )

        tick = await scheduler.run_generation_tick()

        assert tick.keys_failed == 1
        assert not tick.success
        assert tick.errors == ["SOL/4h/gemini: provider down"]

    @pytest.mark.asyncio
    async def test_crashed_key_does_not_abort_tick(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(
            side_effect=[
                RuntimeError("pool exhausted"),
                GenerationResult(success=True, forecasts_generated=24),
            ]
        )
        scheduler = PredictionScheduler(
            orchestrator, MagicMock(), _settings(assets=["SOL"]), sleep=AsyncMock()
        )

        tick = await scheduler.run_generation_tick()

        assert orchestrator.run.await_count == 2
        assert tick.keys_processed == 2
        assert tick.keys_failed == 1
        assert tick.forecasts_generated == 24
        assert tick.errors == ["SOL/1h/gemini: pool exhausted"]


class TestResolutionTick:
    @pytest.mark.asyncio
    async def test_resolves_every_pair(self) -> None:
        resolver = MagicMock()
        resolver.resolve_pending = AsyncMock(return_value=ResolutionResult(resolved_count=2))
        scheduler = PredictionScheduler(
            MagicMock(), resolver, _settings(resolution_limit_per_pass=50)
        )

        tick = await scheduler.run_resolution_tick(assets=["XRP"])

        assert [c.args for c in resolver.resolve_pending.await_args_list] == [
            ("XRP", "1h"),
            ("XRP", "4h"),
        ]
        assert resolver.resolve_pending.await_args.kwargs == {"limit_per_pass": 50}
        assert tick.forecasts_resolved == 4

    @pytest.mark.asyncio
    async def test_bad_granularity_reported(self) -> None:
        resolver = MagicMock()
        resolver.resolve_pending = AsyncMock(side_effect=ConfigurationError("bad interval"))
        scheduler = PredictionScheduler(MagicMock(), resolver, _settings())

        tick = await scheduler.run_resolution_tick(assets=["BTC"], granularities=["2m"])

        assert tick.keys_failed == 1
        assert "bad interval" in tick.errors[0]

    @pytest.mark.asyncio
    async def test_store_error_does_not_stop_remaining_pairs(self) -> None:
        resolver = MagicMock()
        resolver.resolve_pending = AsyncMock(
            side_effect=[RuntimeError("db down"), ResolutionResult(resolved_count=3)]
        )
        scheduler = PredictionScheduler(MagicMock(), resolver, _settings())

        tick = await scheduler.run_resolution_tick(assets=["BTC"])

        assert resolver.resolve_pending.await_count == 2
        assert resolver.resolve_pending.await_args.args == ("BTC", "4h")
        assert tick.keys_processed == 2
        assert tick.keys_failed == 1
        assert tick.forecasts_resolved == 3
        assert tick.errors == ["BTC/1h: db down"]
