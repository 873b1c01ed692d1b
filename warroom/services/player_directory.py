"""
NFL player directory.

Sleeper's /players/nfl lists every player with name, position, club, status
and the ids other platforms use for them. Unified players are filled in
from it: Sleeper rosters only carry player ids, and ESPN players are
cross-referenced to their Sleeper id through the directory's ``espn_id``.

The directory is large and changes slowly, so it is loaded at most once per
TTL (24 hours by default) and concurrent loads share one request.
"""
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from warroom.core.errors import WarRoomError
from warroom.core.logging import get_logger
from warroom.models.dto import SleeperPlayer
from warroom.services.adapters.sleeper_adapter import SleeperAdapter
from warroom.services.cache import Clock, SingleFlight, TTLCache

logger = get_logger(__name__)

DIRECTORY_KEY = "players:nfl"
DEFAULT_DIRECTORY_TTL = 24 * 60 * 60

# ESPN proTeamId -> club abbreviation (0 is free agent)
ESPN_PRO_TEAMS: Dict[int, str] = {
    1: "ATL", 2: "BUF", 3: "CHI", 4: "CIN", 5: "CLE", 6: "DAL", 7: "DEN", 8: "DET",
    9: "GB", 10: "TEN", 11: "IND", 12: "KC", 13: "LV", 14: "LAR", 15: "MIA", 16: "MIN",
    17: "NE", 18: "NO", 19: "NYG", 20: "NYJ", 21: "PHI", 22: "ARI", 23: "PIT", 24: "LAC",
    25: "SF", 26: "SEA", 27: "TB", 28: "WSH", 29: "CAR", 30: "JAX", 33: "BAL", 34: "HOU",
}


def _canonical_rank(player: SleeperPlayer):
    # Active first, then best search rank, then players with a club
    active = (player.status or "").lower() == "active"
    return (not active, player.search_rank if player.search_rank is not None else 9999, player.team is None)


@dataclass
class PlayerIndex:
    """Directory entries by Sleeper id, plus the ESPN id -> Sleeper id map."""
    players: Dict[str, SleeperPlayer] = field(default_factory=dict)
    sleeper_by_espn: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, players: Dict[str, SleeperPlayer]) -> "PlayerIndex":
        """
        Index a directory.

        When several Sleeper entries claim the same ESPN id (retired
        duplicates, practice-squad copies), the canonical one wins: an
        active player before an inactive one, then the lower search rank.
        """
        claims: Dict[str, list] = {}
        for player in players.values():
            if player.espn_id:
                claims.setdefault(player.espn_id, []).append(player)

        sleeper_by_espn = {
            espn_id: min(candidates, key=_canonical_rank).player_id
            for espn_id, candidates in claims.items()
        }
        return cls(players=players, sleeper_by_espn=sleeper_by_espn)

    def get(self, player_id: str) -> Optional[SleeperPlayer]:
        return self.players.get(player_id)

    def sleeper_id_for_espn(self, espn_id: str) -> Optional[str]:
        return self.sleeper_by_espn.get(espn_id)

    def __len__(self) -> int:
        return len(self.players)


def external_ids(player: SleeperPlayer) -> Dict[str, str]:
    """Every platform id the directory knows for a player."""
    ids = {"sleeper": player.player_id}
    if player.espn_id:
        ids["espn"] = player.espn_id
    if player.yahoo_id:
        ids["yahoo"] = player.yahoo_id
    return ids


class PlayerDirectory:
    """Cached access to the Sleeper player directory."""

    def __init__(self, sleeper: SleeperAdapter, ttl: float = DEFAULT_DIRECTORY_TTL, clock: Clock = time.monotonic):
        self.sleeper = sleeper
        self._cache = TTLCache(ttl, clock)
        self._loads = SingleFlight()

    async def load(self) -> PlayerIndex:
        """
        The indexed directory, fetched when missing or expired.

        Raises:
            NetworkError / DecodeError: The directory could not be fetched
        """
        cached = self._cache.get(DIRECTORY_KEY)
        if cached is not None:
            return cached
        return await self._loads.do(DIRECTORY_KEY, self._fetch)

    async def load_or_empty(self) -> PlayerIndex:
        """Like ``load``, but an unavailable directory yields an empty index."""
        try:
            return await self.load()
        except WarRoomError as e:
            logger.warning(f"Player directory unavailable, players keep source fields only: {e}")
            return PlayerIndex()

    async def _fetch(self) -> PlayerIndex:
        index = PlayerIndex.build(await self.sleeper.fetch_players())
        self._cache.set(DIRECTORY_KEY, index)
        logger.info(f"Loaded player directory: {len(index)} players, {len(index.sleeper_by_espn)} ESPN ids")
        return index


def espn_club(pro_team_id: Optional[int]) -> Optional[str]:
    if pro_team_id is None:
        return None
    return ESPN_PRO_TEAMS.get(pro_team_id)

