"""
Error taxonomy for the aggregation engine.

Propagation policy:
- Adapter and scoring errors are caught at the league-refresh boundary and
  turned into "no data for this league this cycle".
- IdentityNotFoundError never escapes the resolver's public API; callers get
  an unidentified result instead.
- StatsTimeoutError is retried on the next scheduled cycle, never in a loop.
"""
from typing import Optional


class WarRoomError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, league_id: Optional[str] = None):
        super().__init__(message)
        self.league_id = league_id

    def __str__(self) -> str:
        base = super().__str__()
        if self.league_id:
            return f"{base} (league={self.league_id})"
        return base


class NetworkError(WarRoomError):
    """Transport failure, timeout, non-2xx status or open circuit breaker."""

    def __init__(self, message: str, league_id: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, league_id)
        self.status_code = status_code


class DecodeError(WarRoomError):
    """Malformed JSON or a payload with an unexpected shape."""


class IdentityNotFoundError(WarRoomError):
    """The operator's team could not be resolved in a league."""


class StatsTimeoutError(WarRoomError):
    """The weekly player-stat feed did not become ready within the bounded wait."""


class ConcurrentLoadError(WarRoomError):
    """A caller waited on another caller's in-flight fetch and that fetch failed."""
