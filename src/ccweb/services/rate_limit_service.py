"""Rate-limit usage: TTL cache and background refresh over the usage terminal."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from ccweb.errors import TerminalNotReadyError, UsageTerminalError
from ccweb.models.usage import ClaudeUsageData
from ccweb.terminal.usage_parser import parse_usage_output

if TYPE_CHECKING:
    from ccweb.services.protocols import UsageSourceProtocol

logger = logging.getLogger(__name__)

CACHE_TTL = 30.0


class RateLimitService:
    """Serves the last scraped ``/usage`` result, refreshing it when stale."""

    def __init__(
        self,
        terminal: UsageSourceProtocol,
        *,
        ttl: float = CACHE_TTL,
        refresh_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._terminal = terminal
        self._ttl = ttl
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._cached: ClaudeUsageData | None = None
        self._cached_at = 0.0
        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def cached(self) -> ClaudeUsageData | None:
        return self._cached

    async def fetch_usage(self) -> ClaudeUsageData:
        """Scrape ``/usage`` now, bypassing the cache."""
        if not self._terminal.ready:
            raise TerminalNotReadyError("Claude terminal not ready. Please wait for it to start.")
        try:
            output = await self._terminal.get_usage()
            return parse_usage_output(output)
        except UsageTerminalError:
            raise
        except (OSError, ValueError, RuntimeError) as e:
            raise UsageTerminalError(f"Failed to read usage: {e}") from e

    async def get_cached_usage(self) -> ClaudeUsageData:
        """Cached usage within the TTL; on refresh failure fall back to the stale value."""
        async with self._lock:
            now = self._clock()
            if self._cached is not None and now - self._cached_at < self._ttl:
                return self._cached
            try:
                usage = await self.fetch_usage()
            except UsageTerminalError:
                if self._cached is not None:
                    logger.warning("Usage refresh failed, serving stale data", exc_info=True)
                    return self._cached
                raise
            self._cached = usage
            self._cached_at = now
            return usage

    async def refresh(self) -> None:
        async with self._lock:
            usage = await self.fetch_usage()
            self._cached = usage
            self._cached_at = self._clock()

    # -- background refresh --

    def start(self) -> None:
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def close(self) -> None:
        if self._refresh_task is None:
            return
        self._refresh_task.cancel()
        try:
            await self._refresh_task
        except asyncio.CancelledError:
            pass
        self._refresh_task = None

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            if not self._terminal.ready:
                continue
            try:
                await self.refresh()
            except UsageTerminalError as e:
                logger.warning("Background usage refresh failed: %s", e)
