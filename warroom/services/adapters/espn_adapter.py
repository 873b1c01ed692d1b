"""ESPN fantasy adapter (Source B).

ESPN serves everything for a league from one document:

    {base}/{season}/segments/0/leagues/{league_id}
        ?view=mMatchupScore&view=mLiveScoring&view=mRoster&view=mTeam&view=mSettings
        [&scoringPeriodId={week}]

Rosters (teams), users (members) and matchups (schedule sides) are
projections of that document. Concurrent projections of the same
league-week share one request.
"""
from typing import Dict, List, Optional

from warroom.models.dto import EspnLeague, EspnMember, EspnTeam, EspnTeamScore
from warroom.services.adapters.base_adapter import BaseAPIAdapter
from warroom.services.cache import SingleFlight

LEAGUE_VIEWS = ["mMatchupScore", "mLiveScoring", "mRoster", "mTeam", "mSettings"]


class EspnAdapter(BaseAPIAdapter):
    """Async client for the ESPN fantasy football league API."""

    source_name = "espn"

    def __init__(self, base_url: str, season: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.season = season
        self._documents = SingleFlight()

    def league_path(self, league_id: str) -> str:
        return f"/{self.season}/segments/0/leagues/{league_id}"

    async def fetch_document(self, league_id: str, week: Optional[int] = None) -> EspnLeague:
        """Fetch and decode the full league document (optionally for one scoring period)."""
        key = f"{league_id}:{week if week is not None else 'current'}"
        return await self._documents.do(key, lambda: self._load_document(league_id, week))

    async def _load_document(self, league_id: str, week: Optional[int]) -> EspnLeague:
        params: Dict[str, object] = {"view": LEAGUE_VIEWS}
        if week is not None:
            params["scoringPeriodId"] = week
        payload = await self.get_json(self.league_path(league_id), params=params, league_id=league_id)
        return self.decode(EspnLeague, payload, league_id)

    async def fetch_league(self, league_id: str) -> EspnLeague:
        return await self.fetch_document(league_id)

    async def fetch_rosters(self, league_id: str, week: Optional[int] = None) -> List[EspnTeam]:
        document = await self.fetch_document(league_id, week)
        return document.teams

    async def fetch_users(self, league_id: str, week: Optional[int] = None) -> List[EspnMember]:
        document = await self.fetch_document(league_id, week)
        return document.members

    async def fetch_matchups(self, league_id: str, week: int) -> List[EspnTeamScore]:
        document = await self.fetch_document(league_id, week)
        return self.team_scores(document, week)

    @staticmethod
    def team_scores(document: EspnLeague, week: int) -> List[EspnTeamScore]:
        """Per-team scores for ``week`` from the document's schedule."""
        scores: List[EspnTeamScore] = []
        for entry in document.schedule:
            if entry.matchup_period_id != week:
                continue
            home, away = entry.home, entry.away
            for side, other, is_home in ((home, away, True), (away, home, False)):
                if side is None:
                    continue
                live = side.total_points_live
                scores.append(EspnTeamScore(
                    team_id=side.team_id,
                    points=live if live is not None else side.total_points,
                    projected_points=side.total_projected_points_live,
                    opponent_id=other.team_id if other is not None else None,
                    is_home=is_home,
                ))
        return scores
