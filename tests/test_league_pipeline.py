"""Tests for one league refresh cycle."""
from unittest.mock import AsyncMock

import pytest
from tenacity import wait_none

from conftest import ESPN_LEAGUE_PATH, ESPN_PREFIX, FakeUpstream, espn_document, team_ids

from warroom.core.errors import DecodeError, NetworkError, StatsTimeoutError, WarRoomError
from warroom.models.dto import SleeperLeague
from warroom.models.unified import EliminationStatus, LeagueSource
from warroom.services.adapters.espn_adapter import EspnAdapter
from warroom.services.adapters.stats_feed import StatsFeed
from warroom.services.league_pipeline import LeagueRefreshPipeline
from warroom.services.player_directory import PlayerDirectory

ESPN_BASE_URL = "https://espn.test" + ESPN_PREFIX


@pytest.fixture
def pipeline(sleeper_adapter) -> LeagueRefreshPipeline:
    return LeagueRefreshPipeline(sleeper_adapter, StatsFeed(sleeper_adapter, ready_timeout=1.0), season="2025")


@pytest.mark.asyncio
async def test_sleeper_cycle_ranks_active_teams(pipeline):
    result = await pipeline.run("L1", 3)

    assert result.ok
    ranking = result.snapshot.ranking
    assert team_ids(ranking.entries) == ["1", "2", "3"]
    assert [e.score for e in ranking.entries] == pytest.approx([23.0, 21.0, 3.0])
    assert [e.status for e in ranking.entries] == [
        EliminationStatus.CHAMPION,
        EliminationStatus.WARNING,
        EliminationStatus.CRITICAL,
    ]
    assert team_ids(ranking.graveyard) == ["4"]
    assert len(result.snapshot.teams) == 4


@pytest.mark.asyncio
async def test_league_scoring_settings_are_used(pipeline):
    await pipeline.run("L1", 3)
    assert pipeline.rules.get("L1").basis == "league settings"


@pytest.mark.asyncio
async def test_failing_league_returns_error_instead_of_raising(pipeline):
    result = await pipeline.run("missing", 3)

    assert not result.ok
    assert isinstance(result.error, NetworkError)
    assert result.error.league_id == "missing"


@pytest.mark.asyncio
async def test_build_lets_errors_propagate(pipeline):
    with pytest.raises(NetworkError):
        await pipeline.build("missing", 3)


@pytest.mark.asyncio
async def test_espn_cycle(sleeper_adapter):
    upstream = FakeUpstream({ESPN_LEAGUE_PATH: espn_document()}, prefix=ESPN_PREFIX)
    espn = EspnAdapter(ESPN_BASE_URL, season="2025", client=upstream.client(ESPN_BASE_URL), retry_wait=wait_none())
    pipeline = LeagueRefreshPipeline(sleeper_adapter, StatsFeed(sleeper_adapter), espn=espn, season="2025")

    result = await pipeline.run("99", 3, LeagueSource.ESPN)

    assert result.ok
    assert result.snapshot.league.source == LeagueSource.ESPN
    assert team_ids(result.snapshot.ranking.entries) == ["1", "2"]
    assert pipeline.rules.get("99").basis.startswith("ESPN scoringItems")
    assert upstream.calls[ESPN_LEAGUE_PATH] == 1
    await espn.close()


@pytest.mark.asyncio
async def test_espn_without_adapter_is_an_error(pipeline):
    result = await pipeline.run("99", 3, LeagueSource.ESPN)

    assert not result.ok
    assert isinstance(result.error, WarRoomError)


@pytest.mark.asyncio
async def test_decode_failure_stops_the_cycle_before_other_fetches():
    sleeper = AsyncMock()
    sleeper.fetch_league.side_effect = DecodeError("Unexpected SleeperLeague shape from sleeper: 1 error(s)")
    stats = AsyncMock()
    pipeline = LeagueRefreshPipeline(sleeper, stats, season="2025")

    result = await pipeline.run("L1", 3)

    assert isinstance(result.error, DecodeError)
    assert result.error.league_id == "L1"
    sleeper.fetch_rosters.assert_not_awaited()
    stats.wait_ready.assert_not_awaited()


@pytest.mark.asyncio
async def test_stat_feed_is_awaited_for_the_league_season():
    sleeper = AsyncMock()
    sleeper.fetch_league.return_value = SleeperLeague(league_id="L1", season="2024", settings={"type": 3})
    sleeper.fetch_rosters.return_value = []
    sleeper.fetch_users.return_value = []
    sleeper.fetch_matchups.return_value = []
    stats = AsyncMock()
    stats.wait_ready.side_effect = StatsTimeoutError("Stat feed for 2024 week 3 not ready after 10.0s")
    pipeline = LeagueRefreshPipeline(sleeper, stats, season="2025")

    result = await pipeline.run("L1", 3)

    stats.wait_ready.assert_awaited_once_with("2024", 3)
    assert isinstance(result.error, StatsTimeoutError)


@pytest.mark.asyncio
async def test_guillotine_graveyard_becomes_new_events(pipeline):
    result = await pipeline.run("L1", 3)

    assert [e.id for e in result.snapshot.ranking.new_events] == ["eliminated_4"]


@pytest.mark.asyncio
async def test_redraft_graveyard_is_not_recorded(pipeline, sleeper_upstream):
    sleeper_upstream.routes["/league/L1"]["settings"] = {"type": 0}
    sleeper_upstream.routes["/league/L1/matchups/3"].pop()

    result = await pipeline.run("L1", 3)

    assert not result.snapshot.league.elimination_mode
    assert team_ids(result.snapshot.ranking.graveyard) == ["4"]
    assert result.snapshot.ranking.new_events == ()


@pytest.mark.asyncio
async def test_unplayed_week_is_not_recorded(pipeline, sleeper_upstream):
    sleeper_upstream.routes["/league/L1/matchups/9"] = []
    sleeper_upstream.routes["/stats/nfl/regular/2025/9"] = {}

    result = await pipeline.run("L1", 9)

    assert team_ids(result.snapshot.ranking.graveyard) == ["4"]
    assert result.snapshot.ranking.new_events == ()


@pytest.mark.asyncio
async def test_espn_players_are_cross_referenced(sleeper_adapter, sleeper_upstream):
    upstream = FakeUpstream({ESPN_LEAGUE_PATH: espn_document()}, prefix=ESPN_PREFIX)
    espn = EspnAdapter(ESPN_BASE_URL, season="2025", client=upstream.client(ESPN_BASE_URL), retry_wait=wait_none())
    pipeline = LeagueRefreshPipeline(
        sleeper_adapter, StatsFeed(sleeper_adapter), espn=espn, players=PlayerDirectory(sleeper_adapter)
    )

    result = await pipeline.run("99", 3, LeagueSource.ESPN)
    players = {p.id: p for p in result.snapshot.teams[0].roster}

    assert players["11"].external_ids["sleeper"] == "p1"
    assert players["11"].nfl_team == "KC"
    assert result.snapshot.ranking.new_events == ()
    assert sleeper_upstream.calls["/players/nfl"] == 1
    await espn.close()
