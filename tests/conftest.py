"""Shared pytest fixtures for warroom-api tests."""
import asyncio
import copy
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import wait_none

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from warroom.models.ledger import Base
from warroom.models.unified import Player, Team

SLEEPER_BASE = "https://api.sleeper.test/v1"
ESPN_BASE = "https://espn.test/apis/v3/games/ffl/seasons"


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Isolated in-memory SQLite database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# UNIFIED MODEL HELPERS
# =============================================================================

def make_team(
    team_id: str,
    score: float,
    players: int = 1,
    league_id: str = "L1",
    owner_name: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> Team:
    """Team with ``players`` starters whose points add up to ``score``."""
    roster = []
    for i in range(players):
        roster.append(Player(
            id=f"{team_id}-p{i}",
            current_points=score if i == 0 else 0.0,
            is_starter=True,
        ))
    return Team(
        id=team_id,
        league_id=league_id,
        owner_name=owner_name or f"Owner {team_id}",
        owner_id=owner_id,
        roster=roster,
        current_score=score,
    )


# =============================================================================
# FAKE UPSTREAM
# =============================================================================

class FakeUpstream:
    """
    httpx MockTransport handler serving canned JSON by path.

    Paths are relative to the mount prefix (e.g. "/league/L1"). Values may
    be JSON-able data, an httpx.Response, or an exception instance to raise.
    ``calls`` counts requests per path.
    """

    def __init__(self, routes: Dict[str, Any], prefix: str = ""):
        self.routes = routes
        self.prefix = prefix
        self.calls: Counter = Counter()
        self.requests: List[httpx.Request] = []
        self.delays: Dict[str, float] = {}

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if self.prefix and path.startswith(self.prefix):
            path = path[len(self.prefix):]
        self.calls[path] += 1
        self.requests.append(request)

        delay = self.delays.get(path)
        if delay:
            await asyncio.sleep(delay)

        if path not in self.routes:
            return httpx.Response(404, json={"error": "not found"})
        value = self.routes[path]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, httpx.Response):
            # Fresh copy per request; the client binds a Response to one request
            return httpx.Response(value.status_code, content=value.content)
        return httpx.Response(200, json=value)

    def client(self, base_url: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(self.handler))


def sleeper_routes(week: int = 3) -> Dict[str, Any]:
    """
    A four-team Sleeper guillotine league.

    Roster 4 has lost every player (graveyard). Player p1 has a stat line in
    the weekly feed: 250 pass yds, 2 pass TD = 18.0 under the league rules.
    The player directory knows p1 to p4; p1 is ESPN player 11.
    """
    return copy.deepcopy({
        "/league/L1": {
            "league_id": "L1",
            "name": "Guillotine League",
            "season": "2025",
            "total_rosters": 4,
            "settings": {"type": 3},
            "scoring_settings": {"pass_yd": 0.04, "pass_td": 4.0, "rec": 1.0, "rush_yd": 0.1},
            "roster_positions": ["QB", "RB", "WR", "BN"],
        },
        "/league/L1/rosters": [
            {"roster_id": 1, "owner_id": "100", "players": ["p1", "p2", "p3"], "starters": ["p1", "p2"]},
            {"roster_id": 2, "owner_id": "200", "players": ["p4", "p5"], "starters": ["p4", "p5"]},
            {"roster_id": 3, "owner_id": "300", "players": ["p6"], "starters": ["p6"]},
            {"roster_id": 4, "owner_id": None, "players": [], "starters": []},
        ],
        "/league/L1/users": [
            {"user_id": "100", "username": "gpdad", "display_name": "gp_dad", "avatar": "abc"},
            {"user_id": "200", "username": "alice", "display_name": "Alice"},
            {"user_id": "300", "username": "bob", "display_name": "Bob"},
        ],
        f"/league/L1/matchups/{week}": [
            {"roster_id": 1, "matchup_id": None, "points": 22.0, "starters": ["p1", "p2"],
             "players": ["p1", "p2", "p3"], "players_points": {"p1": 10.0, "p2": 5.0, "p3": 7.0}},
            {"roster_id": 2, "matchup_id": None, "points": 21.0, "starters": ["p4", "p5"],
             "players": ["p4", "p5"], "players_points": {"p4": 20.0, "p5": 1.0}},
            {"roster_id": 3, "matchup_id": None, "points": 3.0, "starters": ["p6"],
             "players": ["p6"], "players_points": {"p6": 3.0}},
            {"roster_id": 4, "matchup_id": None, "points": 0.0, "starters": [], "players": []},
        ],
        f"/stats/nfl/regular/2025/{week}": {
            "p1": {"pass_yd": 250.0, "pass_td": 2.0, "gp": 1.0},
        },
        "/user/gpdad": {"user_id": "100", "username": "gpdad", "display_name": "gp_dad"},
        "/user/100/leagues/nfl/2025": [
            {"league_id": "L1", "name": "Guillotine League", "season": "2025", "total_rosters": 4,
             "settings": {"type": 3}},
            {"league_id": "L2", "name": "Redraft", "season": "2025", "total_rosters": 10,
             "settings": {"type": 0}},
        ],
        "/players/nfl": {
            "p1": {"full_name": "Pat Passer", "position": "QB", "team": "KC", "status": "Active",
                   "search_rank": 12, "espn_id": 11, "yahoo_id": "30123"},
            "p2": {"first_name": "Rae", "last_name": "Runner", "position": "RB", "team": "DET",
                   "status": "Active", "injury_status": "Questionable"},
            "p3": {"full_name": "Will Wideout", "position": "WR", "team": None, "status": "Inactive"},
            "p4": {"full_name": "Ron Back", "position": "RB", "team": "SF", "status": "Active"},
        },
        "/league/L1/winners_bracket": [
            {"r": 1, "m": 1, "t1": 1, "t2": 2, "w": 1, "l": 2},
        ],
    })


@pytest.fixture
def sleeper_upstream() -> FakeUpstream:
    return FakeUpstream(sleeper_routes(), prefix="/v1")


@pytest.fixture
async def sleeper_adapter(sleeper_upstream):
    from warroom.services.adapters.sleeper_adapter import SleeperAdapter

    adapter = SleeperAdapter(
        SLEEPER_BASE,
        client=sleeper_upstream.client(SLEEPER_BASE),
        retry_wait=wait_none(),
    )
    yield adapter
    await adapter.close()


def build_coordinator(sleeper_adapter, session_factory, ready_timeout: float = 1.0, **kwargs):
    """Coordinator over the fake Sleeper upstream with a scheduler that is never started."""
    from warroom.core.scheduler import LiveUpdateScheduler
    from warroom.services.adapters.stats_feed import StatsFeed
    from warroom.services.identity_resolver import IdentityResolver, OperatorIdentity
    from warroom.services.league_pipeline import LeagueRefreshPipeline
    from warroom.services.player_directory import PlayerDirectory
    from warroom.services.refresh_coordinator import LiveRefreshCoordinator

    stats = StatsFeed(sleeper_adapter, ready_timeout=ready_timeout)
    pipeline = LeagueRefreshPipeline(sleeper_adapter, stats, players=PlayerDirectory(sleeper_adapter), season="2025")
    identity = IdentityResolver(OperatorIdentity(display_name="gpdad", personal_tag="gp"), sleeper=sleeper_adapter)
    kwargs.setdefault("default_week", 3)
    kwargs.setdefault("debounce_seconds", 0.05)
    return LiveRefreshCoordinator(
        pipeline,
        session_factory,
        identity,
        scheduler=LiveUpdateScheduler(interval_seconds=3600),
        **kwargs,
    )


@pytest.fixture
async def coordinator(sleeper_adapter, session_factory):
    coord = build_coordinator(sleeper_adapter, session_factory)
    yield coord
    await coord.stop_all()
    coord.scheduler.stop()


def team_ids(entries) -> List[str]:
    return [e.team.id for e in entries]


# =============================================================================
# ESPN
# =============================================================================

ESPN_PREFIX = "/apis/v3/games/ffl/seasons"
ESPN_LEAGUE_PATH = "/2025/segments/0/leagues/99"


def espn_document(week: int = 3) -> Dict[str, Any]:
    """A two-team ESPN league document with week ``week`` scores."""

    def stat(period, source, total):
        return {"scoringPeriodId": period, "statSourceId": source, "appliedTotal": total}

    return {
        "id": 99,
        "seasonId": 2025,
        "settings": {
            "name": "Office League",
            "rosterSettings": {"lineupSlotCounts": {"0": 1, "2": 2, "20": 5}},
            "scoringSettings": {"scoringItems": [
                {"statId": 3, "points": 0.04},
                {"statId": 53, "points": 1.0},
                {"statId": 41, "points": 0.5},
            ]},
        },
        "members": [{"id": "{ABC}", "displayName": "gpdad", "firstName": "Gee", "lastName": "Pee"}],
        "teams": [
            {"id": 1, "owners": ["{ABC}"], "playoffSeed": 2, "roster": {"entries": [
                {"playerId": 11, "lineupSlotId": 0, "playerPoolEntry": {"player": {
                    "id": 11, "fullName": "QB One", "defaultPositionId": 1, "proTeamId": 12,
                    "injuryStatus": "ACTIVE",
                    "stats": [stat(week, 0, 20.5), stat(week, 1, 18.0), stat(week - 1, 0, 40.0)]}}},
                {"playerId": 12, "lineupSlotId": 20, "playerPoolEntry": {"player": {
                    "id": 12, "fullName": "Bench Guy", "defaultPositionId": 3,
                    "stats": [stat(week, 0, 30.0)]}}},
            ]}},
            {"id": 2, "location": "Big", "nickname": "Dogs", "owners": ["{XYZ}"], "roster": {"entries": [
                {"playerId": 21, "lineupSlotId": 2, "playerPoolEntry": {"player": {
                    "id": 21, "fullName": "RB One", "stats": [stat(week, 0, 9.0)]}}},
            ]}},
        ],
        "schedule": [
            {"id": 1, "matchupPeriodId": week,
             "home": {"teamId": 1, "totalPoints": 19.0, "totalPointsLive": 20.5, "totalProjectedPointsLive": 22.0},
             "away": {"teamId": 2, "totalPoints": 9.0}},
            {"id": 2, "matchupPeriodId": week + 1, "home": {"teamId": 2}, "away": {"teamId": 1}},
        ],
        "status": {"currentMatchupPeriod": week, "isActive": True},
    }
