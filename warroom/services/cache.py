"""
In-process caching for the refresh coordinator.

TTLCache
    Key -> (value, fetch timestamp). A value is never served once
    ``now - fetched_at >= ttl``; expired entries are evicted on read.

SingleFlight
    At most one in-flight load per key. A second caller for a key that is
    already loading awaits the same asyncio.Task instead of starting a new
    fetch. If the shared load fails, the caller that started it gets the
    original error and every waiter gets ConcurrentLoadError chained to it.

Both are only touched from the event loop, so neither needs a lock.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from warroom.core.errors import ConcurrentLoadError
from warroom.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl


class TTLCache:
    """
    Time-bounded key/value cache.

    Args:
        ttl: Default lifetime in seconds for new entries
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(self, ttl: float, clock: Clock = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.get_entry(key)
        if entry is None:
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(key=key, value=value, fetched_at=self._clock(), ttl=ttl or self.ttl)
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for e in self._entries.values() if e.is_fresh(now))


class SingleFlight:
    """Coalesces concurrent loads of the same key into one asyncio.Task."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def do(self, key: str, load: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``load()`` for ``key`` unless a load for it is already running.

        Raises:
            ConcurrentLoadError: This caller joined another caller's load
                and that load failed.
            Exception: The load's own error, for the caller that started it.
        """
        task = self._tasks.get(key)
        if task is not None and not task.done():
            logger.debug(f"Joining in-flight load for {key}")
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                raise ConcurrentLoadError(f"In-flight load for {key} failed: {exc}") from exc

        task = asyncio.ensure_future(load())
        self._tasks[key] = task
        task.add_done_callback(lambda done, k=key: self._release(k, done))
        return await asyncio.shield(task)

    def forget(self, key: str) -> None:
        """
        Clear the in-flight flag for ``key``.

        A running load is left to finish for the callers already waiting on
        it; the next caller starts a fresh load.
        """
        self._tasks.pop(key, None)

    def forget_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._tasks if k.startswith(prefix)]
        for key in doomed:
            del self._tasks[key]
        return len(doomed)

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
