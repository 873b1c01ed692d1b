"""Tests for IdentityResolver."""
import pytest

from conftest import make_team

from warroom.core.errors import IdentityNotFoundError
from warroom.services.identity_resolver import IdentityResolver, OperatorIdentity


@pytest.fixture
def teams():
    return [
        make_team("1", 120.0, owner_name="Alice", owner_id="200"),
        make_team("2", 100.0, owner_name="GP Dad's Squad", owner_id="100"),
        make_team("3", 80.0, owner_name="Bob", owner_id="300"),
    ]


class TestMatchOrder:

    def test_owner_id_match(self, teams):
        resolver = IdentityResolver(OperatorIdentity(user_id="300", personal_tag=None))
        found = resolver.match("L1", teams)

        assert found.team_id == "3"
        assert found.method == "owner_id"
        assert found.identified

    def test_espn_member_id_match(self, teams):
        teams[0].owner_id = "{ABC}"
        resolver = IdentityResolver(OperatorIdentity(espn_id="{ABC}", personal_tag=None))
        assert resolver.match("L1", teams).team_id == "1"

    def test_display_name_is_case_insensitive(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="  bob ", personal_tag=None))
        found = resolver.match("L1", teams)

        assert found.team_id == "3"
        assert found.method == "display_name"

    def test_personal_tag_substring(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="nobody", personal_tag="gp"))
        found = resolver.match("L1", teams)

        assert found.team_id == "2"
        assert found.method == "personal_tag"

    def test_owner_id_beats_display_name(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="Alice", user_id="300"))
        assert resolver.match("L1", teams).method == "owner_id"

    def test_cached_roster_id_wins_once_known(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="Bob"))
        resolver.remember("L1", "1")

        found = resolver.match("L1", teams)
        assert found.team_id == "1"
        assert found.method == "cached_roster_id"

    def test_stale_cached_id_falls_through(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="Bob"))
        resolver.remember("L1", "gone")
        assert resolver.match("L1", teams).method == "display_name"

    def test_successful_match_is_remembered(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="Bob"))
        resolver.match("L1", teams)

        assert resolver.cached_team_id("L1") == "3"
        resolver.forget("L1")
        assert resolver.cached_team_id("L1") is None


class TestGraveyardAndFallback:

    def test_eliminated_operator_is_found_in_graveyard(self, teams):
        dead = make_team("9", 0.0, players=0, owner_name="gpdad", owner_id="999")
        resolver = IdentityResolver(OperatorIdentity(display_name="gpdad", personal_tag=None))

        found = resolver.match("L1", teams, graveyard=[dead])
        assert found.team_id == "9"
        assert found.in_graveyard

    def test_fallback_is_first_team_and_unidentified(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="zed", personal_tag="qq"))
        found = resolver.match("L1", teams)

        assert found.team_id == "1"
        assert found.method == "fallback"
        assert not found.identified
        assert resolver.cached_team_id("L1") is None

    def test_no_teams_gives_empty_match(self):
        resolver = IdentityResolver(OperatorIdentity(display_name="zed"))
        found = resolver.match("L1", [])

        assert found.team is None
        assert found.method == "none"
        assert not found.identified

    def test_strict_match_raises(self, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="zed", personal_tag=None))
        with pytest.raises(IdentityNotFoundError):
            resolver.match_strict("L1", teams)


class TestUserIdResolution:

    @pytest.mark.asyncio
    async def test_numeric_identifier_is_already_an_id(self):
        resolver = IdentityResolver(OperatorIdentity(display_name="12345"))
        assert await resolver.resolve_user_id() == "12345"

    @pytest.mark.asyncio
    async def test_username_is_looked_up_once(self, sleeper_adapter, sleeper_upstream):
        resolver = IdentityResolver(OperatorIdentity(display_name="gpdad"), sleeper=sleeper_adapter)

        assert await resolver.resolve_user_id() == "100"
        assert await resolver.resolve_user_id() == "100"
        assert sleeper_upstream.calls["/user/gpdad"] == 1

    @pytest.mark.asyncio
    async def test_unknown_username_resolves_to_none(self, sleeper_adapter):
        resolver = IdentityResolver(OperatorIdentity(display_name="ghost"), sleeper=sleeper_adapter)
        assert await resolver.resolve_user_id() is None

    @pytest.mark.asyncio
    async def test_resolve_uses_looked_up_id(self, sleeper_adapter, teams):
        resolver = IdentityResolver(OperatorIdentity(display_name="gpdad", personal_tag=None), sleeper=sleeper_adapter)
        found = await resolver.resolve("L1", teams)

        assert found.team_id == "2"
        assert found.method == "owner_id"
