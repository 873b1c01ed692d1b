"""Sleeper adapter (Source A).

Endpoints (all GET, JSON):
- /league/{league_id}
- /league/{league_id}/rosters
- /league/{league_id}/users
- /league/{league_id}/matchups/{week}
- /league/{league_id}/winners_bracket
- /user/{username_or_id}
- /user/{user_id}/leagues/nfl/{season}
- /players/nfl (full player directory, several MB; callers cache it)

Sleeper answers unknown leagues/users with HTTP 200 and a ``null`` body;
those surface as NetworkError with status 404.
"""
from typing import Dict, List

from pydantic import ValidationError

from warroom.core.errors import DecodeError
from warroom.core.logging import get_logger
from warroom.models.dto import (
    SleeperBracketMatch,
    SleeperLeague,
    SleeperMatchup,
    SleeperPlayer,
    SleeperRoster,
    SleeperUser,
)
from warroom.services.adapters.base_adapter import BaseAPIAdapter

logger = get_logger(__name__)


class SleeperAdapter(BaseAPIAdapter):
    """Thin async client for the Sleeper public API."""

    source_name = "sleeper"

    async def fetch_league(self, league_id: str) -> SleeperLeague:
        payload = await self.get_json(f"/league/{league_id}", league_id=league_id)
        return self.decode(SleeperLeague, payload, league_id)

    async def fetch_rosters(self, league_id: str) -> List[SleeperRoster]:
        payload = await self.get_json(f"/league/{league_id}/rosters", league_id=league_id)
        return self.decode_list(SleeperRoster, payload, league_id)

    async def fetch_users(self, league_id: str) -> List[SleeperUser]:
        payload = await self.get_json(f"/league/{league_id}/users", league_id=league_id)
        return self.decode_list(SleeperUser, payload, league_id)

    async def fetch_matchups(self, league_id: str, week: int) -> List[SleeperMatchup]:
        payload = await self.get_json(f"/league/{league_id}/matchups/{week}", league_id=league_id)
        return self.decode_list(SleeperMatchup, payload, league_id)

    async def fetch_user(self, username: str) -> SleeperUser:
        """Resolve a username (or user id) to the Sleeper user record."""
        payload = await self.get_json(f"/user/{username}")
        return self.decode(SleeperUser, payload)

    async def fetch_user_leagues(self, user_id: str, season: str) -> List[SleeperLeague]:
        payload = await self.get_json(f"/user/{user_id}/leagues/nfl/{season}")
        return self.decode_list(SleeperLeague, payload)

    async def fetch_winners_bracket(self, league_id: str) -> List[SleeperBracketMatch]:
        payload = await self.get_json(f"/league/{league_id}/winners_bracket", league_id=league_id)
        return self.decode_list(SleeperBracketMatch, payload, league_id)

    async def fetch_players(self) -> Dict[str, SleeperPlayer]:
        """The NFL player directory, keyed by Sleeper player id."""
        payload = await self.get_json("/players/nfl")
        if not isinstance(payload, dict):
            raise DecodeError(f"{self.source_name} player directory is not an object")

        players: Dict[str, SleeperPlayer] = {}
        skipped = 0
        for player_id, raw in payload.items():
            try:
                players[str(player_id)] = SleeperPlayer.model_validate({**raw, "player_id": player_id})
            except (TypeError, ValidationError):
                skipped += 1
        if skipped:
            logger.warning(f"Skipped {skipped} malformed entries in the {self.source_name} player directory")
        return players
