"""
One refresh cycle for one league.

Order within a cycle is fixed:
    League -> Rosters + Users (concurrently) -> week scores + stat lines
    -> scoring -> ranking

Only elimination leagues record eliminations, and only from a week that has
matchup entries and at least one active team; every other ranking is
published with no new events.

``run`` is the league-refresh boundary: adapter, stat-feed and scoring
errors stop here and come back as a PipelineResult with no snapshot, so a
failing league never takes other leagues down with it.
"""
import asyncio
from dataclasses import dataclass, replace
from typing import Optional

from pydantic import ValidationError

from warroom.core.errors import DecodeError, WarRoomError
from warroom.core.logging import get_logger, refresh_context
from warroom.models.unified import League, LeagueSnapshot, LeagueSource, Ranking
from warroom.services.adapters.espn_adapter import EspnAdapter
from warroom.services.adapters.sleeper_adapter import SleeperAdapter
from warroom.services.adapters.stats_feed import StatsFeed
from warroom.services.elimination_engine import EliminationRankingEngine
from warroom.services.model_builder import BuildResult, ModelBuilder
from warroom.services.player_directory import PlayerDirectory, PlayerIndex
from warroom.services.scoring_engine import ScoringRuleResolver, ScoringRules

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Snapshot on success; ``error`` set when the league produced no data."""
    league_id: str
    week: int
    snapshot: Optional[LeagueSnapshot] = None
    error: Optional[WarRoomError] = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None


class LeagueRefreshPipeline:
    """Fetches, scores and ranks a single league-week."""

    def __init__(
        self,
        sleeper: SleeperAdapter,
        stats: StatsFeed,
        espn: Optional[EspnAdapter] = None,
        builder: Optional[ModelBuilder] = None,
        rules: Optional[ScoringRuleResolver] = None,
        ranking_engine: Optional[EliminationRankingEngine] = None,
        players: Optional[PlayerDirectory] = None,
        season: str = "2025",
    ):
        self.sleeper = sleeper
        self.espn = espn
        self.stats = stats
        self.builder = builder or ModelBuilder()
        self.rules = rules or ScoringRuleResolver()
        self.ranking_engine = ranking_engine or EliminationRankingEngine()
        self.players = players
        self.season = season

    async def run(self, league_id: str, week: int, source: LeagueSource = LeagueSource.SLEEPER) -> PipelineResult:
        """Run one cycle; never raises for upstream or scoring failures."""
        with refresh_context(league_id):
            try:
                snapshot = await self.build(league_id, week, source)
            except WarRoomError as e:
                if e.league_id is None:
                    e.league_id = league_id
                logger.warning(f"League {league_id} week {week}: no data this cycle ({type(e).__name__}: {e})")
                return PipelineResult(league_id=league_id, week=week, error=e)
            except ValidationError as e:
                logger.warning(f"League {league_id} week {week}: invalid scoring data ({e.error_count()} error(s))")
                return PipelineResult(
                    league_id=league_id,
                    week=week,
                    error=DecodeError(f"Invalid scoring data: {e.error_count()} error(s)", league_id),
                )

        return PipelineResult(league_id=league_id, week=week, snapshot=snapshot)

    async def build(self, league_id: str, week: int, source: LeagueSource = LeagueSource.SLEEPER) -> LeagueSnapshot:
        """
        Run one cycle, letting errors propagate.

        Raises:
            NetworkError, DecodeError: Upstream failures
            StatsTimeoutError: Stat feed not ready in time
        """
        if source == LeagueSource.ESPN:
            return await self._build_espn(league_id, week)
        return await self._build_sleeper(league_id, week)

    async def _build_sleeper(self, league_id: str, week: int) -> LeagueSnapshot:
        league_dto = await self.sleeper.fetch_league(league_id)

        rosters, users, directory = await asyncio.gather(
            self.sleeper.fetch_rosters(league_id),
            self.sleeper.fetch_users(league_id),
            self._directory(),
        )
        matchups = await self.sleeper.fetch_matchups(league_id, week)

        season = league_dto.season or self.season
        stat_lines = await self.stats.wait_ready(season, week)

        rules = self.rules.resolve(league_id, ScoringRules.from_mapping(league_dto.scoring_settings))
        built = self.builder.build_sleeper(
            league_dto, rosters, users, matchups, week, rules, stat_lines, directory=directory
        )
        ranking = self._rank(league_id, week, built)

        logger.info(
            f"Refreshed Sleeper league {league_id} week {week}: {len(built.teams)} teams, "
            f"elimination_mode={built.league.elimination_mode}"
        )
        return LeagueSnapshot(
            league=built.league,
            week=week,
            teams=tuple(built.teams),
            matchups=tuple(built.matchups),
            ranking=ranking,
        )

    async def _build_espn(self, league_id: str, week: int) -> LeagueSnapshot:
        if self.espn is None:
            raise WarRoomError("ESPN is not configured", league_id)

        # Rosters, members and scores all come from the one league document
        document, directory = await asyncio.gather(
            self.espn.fetch_document(league_id, week),
            self._directory(),
        )
        scores = EspnAdapter.team_scores(document, week)

        rules = self.rules.resolve(league_id, ScoringRules.from_espn_items(document.scoring_items))
        built = self.builder.build_espn(document, scores, week, rules, self.espn.season, directory=directory)
        ranking = self._rank(league_id, week, built)

        logger.info(f"Refreshed ESPN league {league_id} week {week}: {len(built.teams)} teams")
        return LeagueSnapshot(
            league=built.league,
            week=week,
            teams=tuple(built.teams),
            matchups=tuple(built.matchups),
            ranking=ranking,
        )

    async def _directory(self) -> Optional[PlayerIndex]:
        if self.players is None:
            return None
        return await self.players.load_or_empty()

    def _rank(self, league_id: str, week: int, built: BuildResult) -> Ranking:
        ranking = self.ranking_engine.rank(league_id, week, built.teams)
        if ranking.new_events and not records_eliminations(built.league, built.week_has_data, ranking):
            logger.info(
                f"League {league_id} week {week}: {len(ranking.new_events)} empty team(s) not recorded "
                f"(elimination_mode={built.league.elimination_mode}, week_has_data={built.week_has_data})"
            )
            ranking = replace(ranking, new_events=())
        return ranking


def records_eliminations(league: League, week_has_data: bool, ranking: Ranking) -> bool:
    """Whether a ranking's graveyard may be written to the elimination ledger."""
    return league.elimination_mode and week_has_data and ranking.active_count > 0
