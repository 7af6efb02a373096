"""
Tick-level driver for generation and resolution.

A generation tick walks every configured (asset, granularity, provider)
key sequentially, pausing between provider calls and between assets to
stay inside upstream rate limits. A resolution tick walks every
(asset, granularity) pair. Both are invoked by ``scripts/run_predictions.py``
on their own timers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

from pricecast.errors import ConfigurationError
from pricecast.pipeline.accuracy_resolver import AccuracyResolver
from pricecast.pipeline.orchestrator import GenerationResult, PredictionOrchestrator
from pricecast.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Summary of one scheduler tick."""

    keys_processed: int = 0
    keys_failed: int = 0
    forecasts_generated: int = 0
    forecasts_resolved: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.keys_failed == 0


class PredictionScheduler:
    """Sequential generation/resolution ticks over the configured keys."""

    def __init__(
        self,
        orchestrator: PredictionOrchestrator,
        resolver: AccuracyResolver,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.orchestrator = orchestrator
        self.resolver = resolver
        self._sleep = sleep

    async def run_generation_tick(
        self,
        assets: Optional[Sequence[str]] = None,
        granularities: Optional[Sequence[str]] = None,
        providers: Optional[Sequence[str]] = None,
    ) -> TickResult:
        assets = list(assets or self.settings.assets)
        granularities = list(granularities or self.settings.granularities)
        providers = list(providers or self.settings.providers)

        start = time.monotonic()
        tick = TickResult()

        for asset_index, asset in enumerate(assets):
            if asset_index > 0:
                await self._sleep(self.settings.pause_between_assets_seconds)

            first_call = True
            for granularity in granularities:
                for provider in providers:
                    if not first_call:
                        await self._sleep(self.settings.pause_between_calls_seconds)
                    first_call = False

                    try:
                        result: GenerationResult = await self.orchestrator.run(
                            asset, granularity, provider
                        )
                    except Exception as exc:
                        logger.error(
                            "Generation crashed for %s (%s) via %s: %s",
                            asset,
                            granularity,
                            provider,
                            exc,
                            exc_info=True,
                        )
                        result = GenerationResult(success=False, error=str(exc))
                    tick.keys_processed += 1
                    tick.forecasts_generated += result.forecasts_generated
                    if not result.success:
                        tick.keys_failed += 1
                        tick.errors.append(
                            f"{asset}/{granularity}/{provider}: {result.error}"
                        )

        tick.duration_seconds = time.monotonic() - start
        logger.info(
            "Generation tick: %d keys, %d failed, %d forecasts stored (%.1fs)",
            tick.keys_processed,
            tick.keys_failed,
            tick.forecasts_generated,
            tick.duration_seconds,
        )
        return tick

    async def run_resolution_tick(
        self,
        assets: Optional[Sequence[str]] = None,
        granularities: Optional[Sequence[str]] = None,
    ) -> TickResult:
        assets = list(assets or self.settings.assets)
        granularities = list(granularities or self.settings.granularities)

        start = time.monotonic()
        tick = TickResult()

        for asset in assets:
            for granularity in granularities:
                tick.keys_processed += 1
                try:
                    result = await self.resolver.resolve_pending(
                        asset,
                        granularity,
                        limit_per_pass=self.settings.resolution_limit_per_pass,
                    )
                except ConfigurationError as exc:
                    tick.keys_failed += 1
                    tick.errors.append(f"{asset}/{granularity}: {exc}")
                    logger.error("Resolution skipped for %s (%s): %s", asset, granularity, exc)
                    continue
                except Exception as exc:
                    tick.keys_failed += 1
                    tick.errors.append(f"{asset}/{granularity}: {exc}")
                    logger.error(
                        "Resolution failed for %s (%s): %s",
                        asset,
                        granularity,
                        exc,
                        exc_info=True,
                    )
                    continue
                tick.forecasts_resolved += result.resolved_count

        tick.duration_seconds = time.monotonic() - start
        logger.info(
            "Resolution tick: %d keys, %d forecasts resolved (%.1fs)",
            tick.keys_processed,
            tick.forecasts_resolved,
            tick.duration_seconds,
        )
        return tick
