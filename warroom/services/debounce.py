"""
Debounce state machine for rapid trigger signals (e.g., week selection).

States:
    IDLE     nothing scheduled
    PENDING  a timer is armed; the callback fires after ``delay`` of quiet
    FIRING   the callback is running

Every trigger cancels the armed timer (if any) before arming a new one, so
only the last value in a burst reaches the callback. A trigger that arrives
while FIRING arms a new timer; the running callback is not interrupted.
"""
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from warroom.core.logging import get_logger

logger = get_logger(__name__)


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FIRING = "firing"


class Debouncer:
    """
    Delays ``callback(value)`` until ``delay`` seconds pass without a trigger.

    Must be used from a running event loop.
    """

    def __init__(self, delay: float, callback: Callable[[Any], Awaitable[None]], name: str = "debounce"):
        self.delay = delay
        self.name = name
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._running: Optional[asyncio.Task] = None
        self._pending_value: Any = None
        self.fired = 0

    @property
    def state(self) -> DebounceState:
        if self._handle is not None:
            return DebounceState.PENDING
        if self._running is not None and not self._running.done():
            return DebounceState.FIRING
        return DebounceState.IDLE

    def trigger(self, value: Any) -> None:
        """Record ``value`` and restart the quiet window."""
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._pending_value = value
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Disarm the pending timer without firing."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug(f"{self.name}: pending trigger cancelled")

    async def wait(self) -> None:
        """Wait for the currently running callback, if any."""
        if self._running is not None:
            await asyncio.gather(self._running, return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        value = self._pending_value
        self._pending_value = None
        self.fired += 1
        self._running = asyncio.ensure_future(self._run(value))

    async def _run(self, value: Any) -> None:
        try:
            await self._callback(value)
        except Exception as e:
            logger.error(f"{self.name}: debounced callback failed: {e}")
