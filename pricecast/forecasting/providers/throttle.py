"""
Per-provider call spacing.

Upstream providers are shared across every (asset, granularity) key, so
calls to the same provider are serialized and spaced by a minimum gap.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ProviderThrottle:
    """Async context manager: one in-flight call, minimum gap between calls.

    Usage::

        throttle = ProviderThrottle(min_spacing_seconds=5.0)
        async with throttle:
            await provider.generate(...)
    """

    def __init__(
        self,
        min_spacing_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_spacing_seconds = min_spacing_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    def seconds_until_ready(self) -> float:
        if self._last_call is None:
            return 0.0
        elapsed = self._clock() - self._last_call
        return max(0.0, self.min_spacing_seconds - elapsed)

    async def __aenter__(self) -> "ProviderThrottle":
        await self._lock.acquire()
        try:
            wait = self.seconds_until_ready()
            if wait > 0:
                logger.debug("Provider spacing: sleeping for %.2fs", wait)
                await self._sleep(wait)
        except BaseException:
            self._lock.release()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._last_call = self._clock()
        self._lock.release()
