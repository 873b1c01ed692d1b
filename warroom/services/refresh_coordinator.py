"""
Live Refresh Coordinator.

Owns every piece of mutable refresh state for the service and is the only
thing the HTTP layer talks to:

- Rankings are cached per league-week (``ranking:{league}:{week}``) and
  league discovery per user-season (``leagues:{user}:{season}``).
- Concurrent requests for the same key share one in-flight load.
- Each league has a generation number. A load commits (cache, ledger, last
  error) only if the generation it started under is still current, so a
  superseded load is dropped silently.
- ``force_refresh`` bumps the generation and clears the league's cache
  entries, in-flight flags and stat-feed readiness.
- Week selection is debounced; live updates are APScheduler interval jobs.

All state is touched only from the event loop.
"""
import asyncio
import time
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from warroom.core.database import session_scope
from warroom.core.errors import WarRoomError
from warroom.core.logging import get_logger
from warroom.core.scheduler import LiveUpdateScheduler
from warroom.models.dto import SleeperBracketMatch, SleeperLeague
from warroom.models.unified import EliminationEvent, LeagueSnapshot, LeagueSource, Ranking
from warroom.repositories.elimination_repository import EliminationRepository
from warroom.services.cache import Clock, SingleFlight, TTLCache
from warroom.services.debounce import Debouncer
from warroom.services.identity_resolver import IdentityMatch, IdentityResolver
from warroom.services.league_pipeline import LeagueRefreshPipeline

logger = get_logger(__name__)


def ranking_key(league_id: str, week: int) -> str:
    return f"ranking:{league_id}:{week}"


def discovery_key(user_id: str, season: str) -> str:
    return f"leagues:{user_id}:{season}"


def bracket_key(league_id: str) -> str:
    return f"bracket:{league_id}"


class LiveRefreshCoordinator:
    """
    Schedules, coalesces and caches league refreshes.

    Args:
        pipeline: Runs one refresh cycle for one league
        session_factory: Sessions for the elimination ledger
        identity: Operator team resolver
        scheduler: Live-update scheduler (one job per live league)
        cache_ttl: Lifetime of league/bracket entries in seconds
        discovery_ttl: Lifetime of league-discovery entries in seconds
        debounce_seconds: Quiet window for week selection
        default_week: Week used until one is selected
        clock: Time source for the caches
    """

    def __init__(
        self,
        pipeline: LeagueRefreshPipeline,
        session_factory: sessionmaker,
        identity: IdentityResolver,
        scheduler: Optional[LiveUpdateScheduler] = None,
        cache_ttl: float = 300,
        discovery_ttl: float = 3600,
        debounce_seconds: float = 0.5,
        default_week: int = 1,
        clock: Clock = time.monotonic,
    ):
        self.pipeline = pipeline
        self.session_factory = session_factory
        self.identity = identity
        self.scheduler = scheduler or LiveUpdateScheduler()
        self.cache = TTLCache(cache_ttl, clock)
        self.discovery_cache = TTLCache(discovery_ttl, clock)
        self.flights = SingleFlight()
        self.debounce_seconds = debounce_seconds
        self.default_week = default_week

        self._generations: Dict[str, int] = {}
        self._sources: Dict[str, LeagueSource] = {}
        self._weeks: Dict[str, int] = {}
        self._debouncers: Dict[str, Debouncer] = {}
        self._live: Set[str] = set()
        self._seasons: Dict[str, str] = {}
        self.last_errors: Dict[str, WarRoomError] = {}

    # ========================================================================
    # League bookkeeping
    # ========================================================================

    def register(self, league_id: str, source: LeagueSource) -> None:
        """Record which platform a league lives on (Sleeper when never registered)."""
        self._sources[league_id] = source

    def source_for(self, league_id: str) -> LeagueSource:
        return self._sources.get(league_id, LeagueSource.SLEEPER)

    def generation(self, league_id: str) -> int:
        return self._generations.get(league_id, 0)

    def selected_week(self, league_id: str) -> int:
        return self._weeks.get(league_id, self.default_week)

    def last_error(self, league_id: str) -> Optional[WarRoomError]:
        return self.last_errors.get(league_id)

    def is_live(self, league_id: str) -> bool:
        return league_id in self._live

    def _bump_generation(self, league_id: str) -> int:
        self._generations[league_id] = self.generation(league_id) + 1
        return self._generations[league_id]

    def invalidate(self, league_id: str, week: Optional[int] = None) -> None:
        """
        Supersede in-flight loads and forget cached data for a league.

        Loads already running finish for their current waiters but can no
        longer commit.
        """
        self._bump_generation(league_id)
        self.cache.invalidate_prefix(f"ranking:{league_id}:")
        self.cache.invalidate(bracket_key(league_id))
        self.flights.forget_prefix(f"ranking:{league_id}:")
        self.pipeline.rules.invalidate(league_id)
        self.pipeline.stats.reset(self._seasons.get(league_id, self.pipeline.season), week or self.selected_week(league_id))
        logger.debug(f"League {league_id} invalidated (generation {self.generation(league_id)})")

    # ========================================================================
    # Rankings
    # ========================================================================

    async def current_ranking(self, league_id: str, week: Optional[int] = None) -> Optional[Ranking]:
        """Cached ranking for a league-week, loading it when missing or expired."""
        snapshot = await self.snapshot(league_id, week)
        return snapshot.ranking if snapshot else None

    async def snapshot(self, league_id: str, week: Optional[int] = None) -> Optional[LeagueSnapshot]:
        week = week or self.selected_week(league_id)
        cached = self.cache.get(ranking_key(league_id, week))
        if cached is not None:
            return cached
        return await self._load_shared(league_id, week)

    async def refresh(
        self,
        league_id: str,
        force_refresh: bool = False,
        week: Optional[int] = None,
    ) -> Optional[Ranking]:
        """
        Refresh a league-week.

        Without ``force_refresh`` a fresh cached ranking is returned as is.
        Returns None when the league produced no data this cycle; the cause
        is kept in ``last_error``.
        """
        week = week or self.selected_week(league_id)
        if force_refresh:
            self.invalidate(league_id, week)
        else:
            cached = self.cache.get(ranking_key(league_id, week))
            if cached is not None:
                return cached.ranking

        snapshot = await self._load_shared(league_id, week)
        return snapshot.ranking if snapshot else None

    async def refresh_all(self, league_ids: Iterable[str], force_refresh: bool = False) -> Dict[str, Optional[Ranking]]:
        """Refresh leagues concurrently; a failing league maps to None."""
        ids = list(league_ids)
        results = await asyncio.gather(
            *(self.refresh(league_id, force_refresh=force_refresh) for league_id in ids),
            return_exceptions=True,
        )

        rankings: Dict[str, Optional[Ranking]] = {}
        for league_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Refresh of league {league_id} failed: {result}")
                rankings[league_id] = None
            else:
                rankings[league_id] = result
        return rankings

    async def _load_shared(self, league_id: str, week: int) -> Optional[LeagueSnapshot]:
        return await self.flights.do(ranking_key(league_id, week), lambda: self._load(league_id, week))

    async def _load(self, league_id: str, week: int) -> Optional[LeagueSnapshot]:
        started_under = self.generation(league_id)
        result = await self.pipeline.run(league_id, week, self.source_for(league_id))

        if self.generation(league_id) != started_under:
            logger.debug(f"Discarding superseded refresh of league {league_id} week {week}")
            return result.snapshot

        if result.error is not None:
            self.last_errors[league_id] = result.error
            return None

        self.last_errors.pop(league_id, None)
        self._seasons[league_id] = result.snapshot.league.season
        self.cache.set(ranking_key(league_id, week), result.snapshot)
        self._record_eliminations(result.snapshot)
        return result.snapshot

    # ========================================================================
    # Elimination ledger
    # ========================================================================

    def _record_eliminations(self, snapshot: LeagueSnapshot) -> None:
        ranking = snapshot.ranking
        if ranking is None or not ranking.new_events:
            return
        if not snapshot.league.elimination_mode or ranking.active_count == 0:
            logger.warning(
                f"Refusing to record eliminations for league {ranking.league_id} week {ranking.week} "
                f"(elimination_mode={snapshot.league.elimination_mode}, active={ranking.active_count})"
            )
            return
        try:
            with session_scope(self.session_factory) as db:
                EliminationRepository(db).append(ranking.league_id, ranking.new_events)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record eliminations for league {ranking.league_id}: {e}")

    async def elimination_history(self, league_id: str) -> List[EliminationEvent]:
        """Every elimination recorded for a league, oldest first."""
        with session_scope(self.session_factory) as db:
            return EliminationRepository(db).history(league_id)

    # ========================================================================
    # Live updates
    # ========================================================================

    async def start_live_updates(self, league_id: str) -> None:
        self._live.add(league_id)
        self.scheduler.add_league_job(league_id, self._live_tick)

    async def stop_live_updates(self, league_id: str) -> None:
        self._live.discard(league_id)
        self.scheduler.remove_league_job(league_id)
        debouncer = self._debouncers.pop(league_id, None)
        if debouncer is not None:
            debouncer.cancel()

    async def stop_all(self) -> None:
        for league_id in list(self._live):
            await self.stop_live_updates(league_id)
        for debouncer in self._debouncers.values():
            debouncer.cancel()
        self._debouncers.clear()

    async def _live_tick(self, league_id: str) -> None:
        try:
            ranking = await self.refresh(league_id, force_refresh=True)
        except Exception as e:
            logger.error(f"Live refresh of league {league_id} failed: {e}")
            return
        if ranking is None:
            logger.info(f"Live refresh of league {league_id}: no data this cycle, retrying next interval")

    # ========================================================================
    # Week selection
    # ========================================================================

    def select_week(self, league_id: str, week: int) -> None:
        """Debounced week change; only the last week in a burst is applied."""
        debouncer = self._debouncers.get(league_id)
        if debouncer is None:
            debouncer = Debouncer(
                self.debounce_seconds,
                lambda w, lid=league_id: self._apply_week(lid, w),
                name=f"week-select:{league_id}",
            )
            self._debouncers[league_id] = debouncer
        debouncer.trigger(week)

    async def _apply_week(self, league_id: str, week: int) -> None:
        self._weeks[league_id] = week
        # Anything still loading for the previous week may not commit
        self._bump_generation(league_id)
        await self.refresh(league_id, week=week)

    # ========================================================================
    # Identity, discovery, brackets
    # ========================================================================

    async def my_team(self, league_id: str, week: Optional[int] = None) -> IdentityMatch:
        """The operator's team in a league (unidentified fallback when unknown)."""
        snapshot = await self.snapshot(league_id, week)
        if snapshot is None or snapshot.ranking is None:
            return IdentityMatch(team=None, method="none", identified=False)

        ranking = snapshot.ranking
        return await self.identity.resolve(
            league_id,
            [e.team for e in ranking.entries],
            [e.team for e in ranking.graveyard],
        )

    async def discover_leagues(self, user_id: str, season: Optional[str] = None) -> List[SleeperLeague]:
        """A user's Sleeper leagues for a season (cached for the discovery TTL)."""
        season = season or self.pipeline.season
        key = discovery_key(user_id, season)
        cached = self.discovery_cache.get(key)
        if cached is not None:
            return cached

        async def load() -> List[SleeperLeague]:
            leagues = await self.pipeline.sleeper.fetch_user_leagues(user_id, season)
            self.discovery_cache.set(key, leagues)
            for league in leagues:
                self.register(league.league_id, LeagueSource.SLEEPER)
            return leagues

        return await self.flights.do(key, load)

    async def winners_bracket(self, league_id: str) -> List[SleeperBracketMatch]:
        """Seeded playoff bracket for a Sleeper league (cached for the league TTL)."""
        key = bracket_key(league_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        async def load() -> List[SleeperBracketMatch]:
            bracket = await self.pipeline.sleeper.fetch_winners_bracket(league_id)
            self.cache.set(key, bracket)
            return bracket

        return await self.flights.do(key, load)
