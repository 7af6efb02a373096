#!/usr/bin/env python3
"""
Print the state of every forward window and its accuracy.

For each (asset, granularity, provider): number of future forecasts,
target instants held by more than one generation, and the accuracy
summary of the (asset, granularity).

Usage:
    python scripts/verify_predictions.py [--assets BTC ETH] [--providers gemini]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from pricecast.logging_config import setup_logging
from pricecast.settings import get_settings


def _fmt_ms(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).strftime(
        "%Y-%m-%d %H:%M UTC"
    )


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(level="WARNING", json_format=False)

    from pricecast.db import postgres
    from pricecast.services.forecast_service import ForecastService
    from pricecast.store.prediction_store import PredictionStore

    session_factory = postgres.init_db()
    store = PredictionStore(session_factory)
    service = ForecastService(store)

    assets = args.assets or settings.assets
    providers = args.providers or settings.providers
    problems = 0

    try:
        for asset in assets:
            for granularity in settings.granularities:
                summary = await service.get_accuracy_summary(asset, granularity)
                print(
                    f"{asset} {granularity}: accuracy {summary.overall_accuracy:.2f}% "
                    f"over {summary.total_resolved} resolved"
                )
                for provider in providers:
                    window = await store.get_forward_window(asset, granularity, provider)
                    duplicates = await store.find_duplicate_targets(
                        asset, granularity, provider
                    )
                    status = "OK" if len(window) == settings.window_size else "SHORT"
                    span = (
                        f"{_fmt_ms(window[0].target_time)} -> {_fmt_ms(window[-1].target_time)}"
                        if window
                        else "empty"
                    )
                    print(
                        f"  {provider:<7} {len(window):>3}/{settings.window_size} "
                        f"{status:<5} {span}"
                    )
                    for target_time, count in duplicates:
                        print(f"    duplicate target {_fmt_ms(target_time)} x{count}")
                    if duplicates:
                        problems += 1
    finally:
        await postgres.close_db()

    return 1 if problems else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify rolling forecast windows.")
    parser.add_argument("--assets", nargs="+", default=None)
    parser.add_argument("--providers", nargs="+", default=None)
    sys.exit(asyncio.run(_run(parser.parse_args())))


if __name__ == "__main__":
    main()
