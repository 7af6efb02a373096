"""
Sentiment snapshot reader.

The sentiment/news collector writes a JSON snapshot to disk::

    {"data": {"BTC": {...}, "ETH": {...}, "marketSentiment": {...}}}

``SentimentStore`` reads it and keeps the parsed result in a process-scoped
``cachetools.TTLCache`` so a generation tick over many keys reads the file
once. A missing or unreadable snapshot is not an error: forecasts are
generated without sentiment.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

_CACHE_KEY = "snapshot"


class SentimentStore:
    """TTL-cached reader for the sentiment snapshot file.

    Args:
        path: Snapshot file path.
        ttl_seconds: How long a parsed snapshot stays fresh.
        timer: Clock for the cache (injectable for tests).
    """

    def __init__(
        self,
        path: str | Path,
        ttl_seconds: float = 900,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = Path(path)
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(
            maxsize=1, ttl=ttl_seconds, timer=timer
        )

    def read_snapshot(self) -> Optional[dict[str, Any]]:
        cached = self._cache.get(_CACHE_KEY)
        if cached is not None:
            return cached

        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No sentiment snapshot at %s", self.path)
            return None
        except OSError as exc:
            logger.warning("Could not read sentiment snapshot %s: %s", self.path, exc)
            return None

        try:
            snapshot = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Invalid sentiment snapshot %s: %s", self.path, exc)
            return None

        if not isinstance(snapshot, dict):
            logger.warning("Sentiment snapshot %s is not a JSON object", self.path)
            return None

        self._cache[_CACHE_KEY] = snapshot
        return snapshot

    def invalidate(self) -> None:
        self._cache.clear()
