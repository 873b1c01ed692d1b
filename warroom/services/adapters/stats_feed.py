"""
Weekly player-statistics feed.

GET {sleeper}/stats/nfl/regular/{season}/{week} returns
``{player_id: {stat_name: value}}``. Values that are not numbers are dropped.

The feed is "ready" for a season-week once a load has completed and is still
within its TTL. ``wait_ready`` bounds how long a refresh cycle waits for that;
a load that overruns keeps running in the background so the next cycle can
pick up its result.
"""
import asyncio
import math
import time
from typing import Any, Dict, Optional

from warroom.core.errors import DecodeError, StatsTimeoutError
from warroom.core.logging import get_logger
from warroom.services.adapters.base_adapter import BaseAPIAdapter
from warroom.services.cache import Clock, SingleFlight, TTLCache

logger = get_logger(__name__)

StatLines = Dict[str, Dict[str, float]]

DEFAULT_READY_TIMEOUT = 10.0


def parse_stat_lines(payload: Any) -> StatLines:
    """Keep only numeric stat values; raise DecodeError for a non-object body."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise DecodeError(f"Stat feed returned {type(payload).__name__}, expected an object")

    lines: StatLines = {}
    for player_id, raw in payload.items():
        if not isinstance(raw, dict):
            continue
        line = {
            stat: float(value)
            for stat, value in raw.items()
            if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
        }
        if line:
            lines[str(player_id)] = line
    return lines


class StatsFeed:
    """Loads and caches weekly stat lines with a bounded readiness wait."""

    def __init__(
        self,
        adapter: BaseAPIAdapter,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
        ttl: float = 300,
        clock: Clock = time.monotonic,
    ):
        self.adapter = adapter
        self.ready_timeout = ready_timeout
        self._cache = TTLCache(ttl, clock)
        self._loads = SingleFlight()

    @staticmethod
    def key(season: str, week: int) -> str:
        return f"stats:{season}:{week}"

    def is_ready(self, season: str, week: int) -> bool:
        return self.key(season, week) in self._cache

    async def fetch_week_stats(self, season: str, week: int) -> StatLines:
        payload = await self.adapter.get_json(f"/stats/nfl/regular/{season}/{week}")
        return parse_stat_lines(payload)

    async def wait_ready(self, season: str, week: int, timeout: Optional[float] = None) -> StatLines:
        """
        Stat lines for a season-week, loading them if needed.

        Raises:
            StatsTimeoutError: The feed did not become ready within the bound
            NetworkError / DecodeError: The load itself failed
        """
        key = self.key(season, week)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        bound = self.ready_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(self._loads.do(key, lambda: self._load(season, week)), bound)
        except asyncio.TimeoutError as e:
            logger.warning(f"Stat feed for {season} week {week} not ready after {bound}s")
            raise StatsTimeoutError(f"Stat feed for {season} week {week} not ready after {bound}s") from e

    def reset(self, season: str, week: int) -> None:
        """Drop cached lines and the in-flight flag for a season-week."""
        key = self.key(season, week)
        self._cache.invalidate(key)
        self._loads.forget(key)

    async def _load(self, season: str, week: int) -> StatLines:
        lines = await self.fetch_week_stats(season, week)
        self._cache.set(self.key(season, week), lines)
        logger.info(f"Loaded stat lines for {len(lines)} players ({season} week {week})")
        return lines
