"""Tests for the Sleeper and ESPN adapters."""
import asyncio

import httpx
import pytest
from tenacity import wait_none

from conftest import (
    ESPN_LEAGUE_PATH,
    ESPN_PREFIX,
    SLEEPER_BASE,
    FakeUpstream,
    espn_document,
)

from warroom.core.circuit_breaker import call_with_breaker, create_breaker, get_breaker_state
from warroom.core.errors import DecodeError, NetworkError
from warroom.services.adapters.base_adapter import is_transient
from warroom.services.adapters.espn_adapter import EspnAdapter
from warroom.services.adapters.sleeper_adapter import SleeperAdapter

ESPN_BASE_URL = "https://espn.test" + ESPN_PREFIX


def _sleeper(upstream: FakeUpstream, **kwargs) -> SleeperAdapter:
    kwargs.setdefault("retry_wait", wait_none())
    return SleeperAdapter(SLEEPER_BASE, client=upstream.client(SLEEPER_BASE), **kwargs)


class TestSleeperDecoding:

    @pytest.mark.asyncio
    async def test_fetch_league(self, sleeper_adapter):
        league = await sleeper_adapter.fetch_league("L1")

        assert league.league_id == "L1"
        assert league.settings.chopped is True
        assert league.scoring_settings["pass_td"] == 4.0

    @pytest.mark.asyncio
    async def test_fetch_lists(self, sleeper_adapter):
        rosters = await sleeper_adapter.fetch_rosters("L1")
        users = await sleeper_adapter.fetch_users("L1")
        matchups = await sleeper_adapter.fetch_matchups("L1", 3)

        assert [r.roster_id for r in rosters] == [1, 2, 3, 4]
        assert users[0].display_name == "gp_dad"
        assert matchups[0].players_points["p1"] == 10.0

    @pytest.mark.asyncio
    async def test_discovery_and_bracket(self, sleeper_adapter):
        leagues = await sleeper_adapter.fetch_user_leagues("100", "2025")
        bracket = await sleeper_adapter.fetch_winners_bracket("L1")

        assert [league.league_id for league in leagues] == ["L1", "L2"]
        assert bracket[0].w == 1

    @pytest.mark.asyncio
    async def test_null_body_is_not_found(self):
        upstream = FakeUpstream({"/league/ZZ": httpx.Response(200, content=b"null")}, prefix="/v1")
        adapter = _sleeper(upstream)

        with pytest.raises(NetworkError) as exc_info:
            await adapter.fetch_league("ZZ")
        assert exc_info.value.status_code == 404
        assert exc_info.value.league_id == "ZZ"
        await adapter.close()

    @pytest.mark.asyncio
    async def test_wrong_shape_is_decode_error(self):
        upstream = FakeUpstream({"/league/L1/rosters": [{"roster_id": "not-a-number"}]}, prefix="/v1")
        adapter = _sleeper(upstream)

        with pytest.raises(DecodeError):
            await adapter.fetch_rosters("L1")
        await adapter.close()

    @pytest.mark.asyncio
    async def test_invalid_json_is_decode_error(self):
        upstream = FakeUpstream({"/league/L1": httpx.Response(200, content=b"<html>oops</html>")}, prefix="/v1")
        adapter = _sleeper(upstream)

        with pytest.raises(DecodeError):
            await adapter.fetch_league("L1")
        await adapter.close()

    @pytest.mark.asyncio
    async def test_fetch_players(self, sleeper_adapter):
        players = await sleeper_adapter.fetch_players()

        assert sorted(players) == ["p1", "p2", "p3", "p4"]
        assert players["p1"].espn_id == "11"
        assert players["p2"].display_name == "Rae Runner"

    @pytest.mark.asyncio
    async def test_malformed_players_are_skipped(self):
        upstream = FakeUpstream({"/players/nfl": {
            "p1": {"full_name": "Pat Passer", "search_rank": "high"},
            "p2": "retired",
            "p3": {"full_name": "Ron Back"},
        }}, prefix="/v1")
        adapter = _sleeper(upstream)

        players = await adapter.fetch_players()

        assert list(players) == ["p3"]
        await adapter.close()

    @pytest.mark.asyncio
    async def test_player_directory_must_be_an_object(self):
        upstream = FakeUpstream({"/players/nfl": [{"player_id": "p1"}]}, prefix="/v1")
        adapter = _sleeper(upstream)

        with pytest.raises(DecodeError):
            await adapter.fetch_players()
        await adapter.close()


class TestRetryAndBreaker:

    @pytest.mark.asyncio
    async def test_server_errors_are_retried_then_surface(self):
        upstream = FakeUpstream({"/league/L1": httpx.Response(503)}, prefix="/v1")
        adapter = _sleeper(upstream, retry_attempts=3)

        with pytest.raises(NetworkError) as exc_info:
            await adapter.fetch_league("L1")
        assert exc_info.value.status_code == 503
        assert upstream.calls["/league/L1"] == 3
        await adapter.close()

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, sleeper_adapter, sleeper_upstream):
        with pytest.raises(NetworkError) as exc_info:
            await sleeper_adapter.fetch_league("missing")
        assert exc_info.value.status_code == 404
        assert sleeper_upstream.calls["/league/missing"] == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_network_errors(self):
        upstream = FakeUpstream({"/league/L1": httpx.ConnectError("connection refused")}, prefix="/v1")
        adapter = _sleeper(upstream, retry_attempts=2)

        with pytest.raises(NetworkError) as exc_info:
            await adapter.fetch_league("L1")
        assert exc_info.value.status_code is None
        assert upstream.calls["/league/L1"] == 2
        await adapter.close()

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        upstream = FakeUpstream({"/league/L1": httpx.Response(500)}, prefix="/v1")
        adapter = _sleeper(upstream, retry_attempts=1, breaker=create_breaker("test_sleeper", fail_max=2))

        for _ in range(2):
            with pytest.raises(NetworkError):
                await adapter.fetch_league("L1")

        with pytest.raises(NetworkError, match="circuit open"):
            await adapter.fetch_league("L1")
        assert upstream.calls["/league/L1"] == 2
        await adapter.close()

    @pytest.mark.asyncio
    async def test_failed_trial_call_reopens_immediately(self):
        breaker = create_breaker("trial", fail_max=5, reset_timeout=0)
        breaker.open()

        async def boom():
            raise NetworkError("still down")

        with pytest.raises(NetworkError, match="still down"):
            await call_with_breaker(breaker, boom)
        assert get_breaker_state(breaker) == "open"

    @pytest.mark.asyncio
    async def test_successful_trial_call_closes(self):
        breaker = create_breaker("trial", fail_max=5, reset_timeout=0)
        breaker.open()

        async def ok():
            return 7

        assert await call_with_breaker(breaker, ok) == 7
        assert get_breaker_state(breaker) == "closed"

    def test_transient_classification(self):
        request = httpx.Request("GET", "https://x.test")
        assert is_transient(httpx.ReadTimeout("slow", request=request))
        assert is_transient(httpx.HTTPStatusError("", request=request, response=httpx.Response(429)))
        assert not is_transient(httpx.HTTPStatusError("", request=request, response=httpx.Response(404)))
        assert not is_transient(ValueError("nope"))


class TestEspnAdapter:

    @pytest.fixture
    def espn_upstream(self) -> FakeUpstream:
        return FakeUpstream({ESPN_LEAGUE_PATH: espn_document()}, prefix=ESPN_PREFIX)

    @pytest.fixture
    async def espn(self, espn_upstream):
        adapter = EspnAdapter(
            ESPN_BASE_URL,
            season="2025",
            client=espn_upstream.client(ESPN_BASE_URL),
            retry_wait=wait_none(),
        )
        yield adapter
        await adapter.close()

    @pytest.mark.asyncio
    async def test_projections_share_one_document_request(self, espn, espn_upstream):
        espn_upstream.delays[ESPN_LEAGUE_PATH] = 0.02

        teams, members, scores = await asyncio.gather(
            espn.fetch_rosters("99", 3),
            espn.fetch_users("99", 3),
            espn.fetch_matchups("99", 3),
        )

        assert [t.id for t in teams] == [1, 2]
        assert members[0].best_name == "Gee Pee"
        assert len(scores) == 2
        assert espn_upstream.calls[ESPN_LEAGUE_PATH] == 1

    @pytest.mark.asyncio
    async def test_document_request_carries_views_and_period(self, espn, espn_upstream):
        await espn.fetch_document("99", 3)

        params = espn_upstream.requests[0].url.params
        assert params.get_list("view") == ["mMatchupScore", "mLiveScoring", "mRoster", "mTeam", "mSettings"]
        assert params["scoringPeriodId"] == "3"

    @pytest.mark.asyncio
    async def test_current_document_has_no_period(self, espn, espn_upstream):
        league = await espn.fetch_league("99")

        assert league.display_name == "Office League"
        assert "scoringPeriodId" not in espn_upstream.requests[0].url.params

    @pytest.mark.asyncio
    async def test_private_league_is_network_error(self, espn, espn_upstream):
        espn_upstream.routes[ESPN_LEAGUE_PATH] = httpx.Response(401, json={"messages": ["not authorized"]})

        with pytest.raises(NetworkError) as exc_info:
            await espn.fetch_document("99", 3)
        assert exc_info.value.status_code == 401
