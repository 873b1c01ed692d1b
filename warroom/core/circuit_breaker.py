"""
Circuit breakers for the upstream fantasy platforms.

A dead upstream fails fast instead of stalling every refresh cycle. Each
adapter owns one breaker (see create_breaker); there are no module-level
breaker globals.

States (pybreaker):
- closed: calls pass through, consecutive failures are counted
- open: calls fail immediately until the reset timeout elapses
- half-open: one trial call decides between closed and open
"""
from typing import Any, Awaitable, Callable, TypeVar

from pybreaker import STATE_OPEN, CircuitBreaker, CircuitBreakerError

from warroom.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FAIL_MAX = 5
DEFAULT_RESET_TIMEOUT = 60  # seconds

T = TypeVar("T")


def create_breaker(
    name: str,
    fail_max: int = DEFAULT_FAIL_MAX,
    reset_timeout: int = DEFAULT_RESET_TIMEOUT,
) -> CircuitBreaker:
    """Named breaker for one upstream ("sleeper_api", "espn_api", ...)."""
    return CircuitBreaker(fail_max=fail_max, reset_timeout=reset_timeout, name=name)


def get_breaker_state(breaker: CircuitBreaker) -> str:
    """'closed', 'open' or 'half-open'."""
    return breaker.current_state


def _noop() -> None:
    return None


def _reraise(exc: BaseException) -> None:
    raise exc


async def call_with_breaker(
    breaker: CircuitBreaker,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Await ``func`` under the protection of ``breaker``.

    pybreaker only runs synchronous callables, so the coroutine is awaited
    here and its outcome is reported to the breaker afterwards. Once the
    reset timeout of an open breaker has elapsed, the next call is the
    trial: its failure reopens the circuit at once.

    Raises:
        CircuitBreakerError: The circuit is open and the reset timeout has
            not elapsed; ``func`` is not called.
        Exception: Whatever ``func`` raised (the original error, never the
            trip error).
    """
    trial = breaker.current_state == STATE_OPEN
    if trial:
        # Raises while the reset timeout is running
        breaker.call(_noop)

    try:
        result = await func(*args, **kwargs)
    except Exception as exc:
        if trial:
            breaker.open()
            logger.warning(f"Circuit breaker '{breaker.name}' reopened after failed trial call: {exc}")
            raise
        try:
            breaker.call(_reraise, exc)
        except CircuitBreakerError:
            logger.warning(f"Circuit breaker '{breaker.name}' tripped to OPEN after: {exc}")
        except Exception:
            # pybreaker re-raised exc; the bare raise below propagates it
            pass
        raise

    try:
        breaker.call(_noop)
    except CircuitBreakerError:
        # Another caller opened the circuit while this call was in flight
        pass
    return result


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "DEFAULT_FAIL_MAX",
    "DEFAULT_RESET_TIMEOUT",
    "call_with_breaker",
    "create_breaker",
    "get_breaker_state",
]
