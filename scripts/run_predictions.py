#!/usr/bin/env python3
"""
Entry point for one prediction tick (systemd timer target).

Resolves matured forecasts, then tops up every configured forward window.
Exits with code 0 when every key succeeded, 1 otherwise.

Usage:
    python scripts/run_predictions.py [OPTIONS]

Options:
    --assets BTC ETH         Restrict to these assets (default: settings)
    --granularities 1h 4h    Restrict to these granularities (default: settings)
    --providers gemini gpt   Restrict to these providers (default: settings)
    --resolve-only           Only run accuracy resolution
    --skip-resolve           Only run generation
    -h, --help               Show this help message
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on sys.path for pricecast.* imports
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from pricecast.logging_config import setup_logging
from pricecast.settings import get_settings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rolling price forecasts -- resolve matured, generate missing.",
    )
    parser.add_argument("--assets", nargs="+", default=None, help="Assets to process")
    parser.add_argument(
        "--granularities", nargs="+", default=None, help="Granularities to process"
    )
    parser.add_argument(
        "--providers", nargs="+", default=None, help="Forecast providers to use"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--resolve-only",
        action="store_true",
        help="Only resolve matured forecasts",
    )
    mode.add_argument(
        "--skip-resolve",
        action="store_true",
        help="Skip resolution, only generate",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    """Initialize components and run one tick. Returns exit code."""
    settings = get_settings()
    setup_logging(level=settings.log_level, json_format=settings.log_json)
    logger = logging.getLogger(__name__)

    logger.info("Prediction tick starting (env=%s)", settings.environment)

    from pricecast.db import postgres

    session_factory = postgres.init_db()

    from pricecast.forecasting.providers import build_adapter
    from pricecast.ingest.market_data import MarketDataRepository
    from pricecast.pipeline.accuracy_resolver import AccuracyResolver
    from pricecast.pipeline.orchestrator import PredictionOrchestrator
    from pricecast.pipeline.scheduler import PredictionScheduler
    from pricecast.sentiment import SentimentStore
    from pricecast.store.prediction_store import PredictionStore

    store = PredictionStore(session_factory)
    market_data = MarketDataRepository(session_factory)
    sentiment = SentimentStore(
        settings.sentiment_data_path, ttl_seconds=settings.sentiment_cache_ttl_seconds
    )
    adapter = build_adapter(settings)

    scheduler = PredictionScheduler(
        orchestrator=PredictionOrchestrator(
            store=store,
            market_data=market_data,
            sentiment=sentiment,
            adapter=adapter,
            settings=settings,
        ),
        resolver=AccuracyResolver(store=store, market_data=market_data),
        settings=settings,
    )

    exit_code = 0
    try:
        if not args.skip_resolve:
            resolution = await scheduler.run_resolution_tick(
                assets=args.assets, granularities=args.granularities
            )
            if not resolution.success:
                exit_code = 1

        if not args.resolve_only:
            providers = args.providers or [
                p for p in settings.providers if p in adapter.available
            ]
            if not providers:
                logger.critical(
                    "No forecast provider configured. Set GEMINI_API_KEY, "
                    "OPENAI_API_KEY or ANTHROPIC_API_KEY."
                )
                return 1

            generation = await scheduler.run_generation_tick(
                assets=args.assets,
                granularities=args.granularities,
                providers=providers,
            )
            if not generation.success:
                logger.error("Generation errors: %s", "; ".join(generation.errors))
                exit_code = 1
    finally:
        await postgres.close_db()

    return exit_code


def main() -> None:
    """Parse args and run the async tick."""
    args = _parse_args()
    exit_code = asyncio.run(_run(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
