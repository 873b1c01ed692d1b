"""
Operator Team Identification Service.

Finds "the authenticated operator's team" inside a league. The operator is
known by some mix of a display name, a numeric Sleeper user id (or a
username that Sleeper resolves to one), an ESPN member id, and a short
personal tag used as a last-resort heuristic.

Matching Strategy (first match wins):
1. Roster id cached from an earlier resolution in this league, else the
   roster owned by the operator's Sleeper user id / ESPN member id
2. Case-insensitive owner display-name match
3. Personal tag substring match against owner display names
4. First team in ranking order, flagged as unidentified

Graveyard teams are searched too, so an eliminated operator still finds
their team. A failed resolution is logged and returned as an unidentified
match, never raised to callers.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from warroom.core.errors import IdentityNotFoundError, WarRoomError
from warroom.core.logging import get_logger
from warroom.models.unified import Team

logger = get_logger(__name__)


@dataclass(frozen=True)
class OperatorIdentity:
    """Read-only operator credentials/settings."""
    display_name: Optional[str] = None
    user_id: Optional[str] = None
    espn_id: Optional[str] = None
    personal_tag: Optional[str] = "gp"

    @classmethod
    def from_settings(cls, settings) -> "OperatorIdentity":
        return cls(
            display_name=settings.OPERATOR_USERNAME or None,
            user_id=settings.OPERATOR_USER_ID or None,
            espn_id=settings.OPERATOR_ESPN_ID or None,
            personal_tag=settings.OPERATOR_PERSONAL_TAG or None,
        )


@dataclass(frozen=True)
class IdentityMatch:
    """Outcome of a resolution; ``identified`` is False for the fallback."""
    team: Optional[Team]
    method: str
    identified: bool
    in_graveyard: bool = False

    @property
    def team_id(self) -> Optional[str]:
        return self.team.id if self.team else None


class IdentityResolver:
    """
    Resolves the operator's team per league and caches the result.

    Args:
        operator: Operator identity
        sleeper: Sleeper adapter used to turn a username into a user id
    """

    def __init__(self, operator: OperatorIdentity, sleeper=None):
        self.operator = operator
        self.sleeper = sleeper
        self._team_ids: Dict[str, str] = {}
        self._user_id: Optional[str] = None

    # ========================================================================
    # Cache
    # ========================================================================

    def cached_team_id(self, league_id: str) -> Optional[str]:
        return self._team_ids.get(league_id)

    def remember(self, league_id: str, team_id: str) -> None:
        self._team_ids[league_id] = team_id

    def forget(self, league_id: str) -> None:
        self._team_ids.pop(league_id, None)

    # ========================================================================
    # Operator id
    # ========================================================================

    async def resolve_user_id(self) -> Optional[str]:
        """
        The operator's Sleeper user id.

        A numeric identifier is already an id; anything else is treated as a
        username and looked up once. Lookup failures yield None.
        """
        if self._user_id:
            return self._user_id

        candidate = self.operator.user_id or self.operator.display_name
        if not candidate:
            return None

        if candidate.isdigit():
            self._user_id = candidate
            return candidate

        if self.sleeper is None:
            return None

        try:
            user = await self.sleeper.fetch_user(candidate)
        except WarRoomError as e:
            logger.warning(f"Could not resolve Sleeper username '{candidate}': {e}")
            return None

        self._user_id = user.user_id
        logger.info(f"Resolved Sleeper username '{candidate}' to user id {user.user_id}")
        return self._user_id

    # ========================================================================
    # Matching
    # ========================================================================

    async def resolve(
        self,
        league_id: str,
        teams: Sequence[Team],
        graveyard: Sequence[Team] = (),
    ) -> IdentityMatch:
        """Resolve after making sure the operator's user id is known."""
        user_id = await self.resolve_user_id()
        return self.match(league_id, teams, graveyard, user_id=user_id)

    def match(
        self,
        league_id: str,
        teams: Sequence[Team],
        graveyard: Sequence[Team] = (),
        user_id: Optional[str] = None,
    ) -> IdentityMatch:
        """
        Resolve against already-built teams.

        ``teams`` is expected in ranking order; the fallback picks its first
        entry.
        """
        try:
            found = self.match_strict(league_id, teams, graveyard, user_id)
        except IdentityNotFoundError as e:
            logger.warning(f"{e}; falling back to first team")
            fallback = teams[0] if teams else (graveyard[0] if graveyard else None)
            return IdentityMatch(
                team=fallback,
                method="fallback" if fallback else "none",
                identified=False,
                in_graveyard=bool(fallback) and not teams,
            )

        self.remember(league_id, found.team_id)
        return found

    def match_strict(
        self,
        league_id: str,
        teams: Sequence[Team],
        graveyard: Sequence[Team] = (),
        user_id: Optional[str] = None,
    ) -> IdentityMatch:
        """
        Resolve without the fallback.

        Raises:
            IdentityNotFoundError: No rule matched
        """
        graveyard_ids = {t.id for t in graveyard}
        candidates: List[Team] = list(teams) + list(graveyard)

        def hit(team: Team, method: str) -> IdentityMatch:
            return IdentityMatch(team=team, method=method, identified=True, in_graveyard=team.id in graveyard_ids)

        # Step 1: roster id (cached, then ownership)
        cached = self.cached_team_id(league_id)
        if cached is not None:
            team = _first(candidates, lambda t: t.id == cached)
            if team is not None:
                return hit(team, "cached_roster_id")

        owner_ids = {i for i in (user_id or self.operator.user_id, self.operator.espn_id) if i}
        if owner_ids:
            team = _first(candidates, lambda t: t.owner_id in owner_ids)
            if team is not None:
                return hit(team, "owner_id")

        # Step 2: display name
        name = (self.operator.display_name or "").strip().lower()
        if name:
            team = _first(candidates, lambda t: t.owner_name.strip().lower() == name)
            if team is not None:
                return hit(team, "display_name")

        # Step 3: personal tag heuristic
        tag = (self.operator.personal_tag or "").strip().lower()
        if tag:
            team = _first(candidates, lambda t: tag in t.owner_name.lower())
            if team is not None:
                logger.info(f"League {league_id}: matched operator by personal tag '{tag}' ({team.owner_name})")
                return hit(team, "personal_tag")

        raise IdentityNotFoundError("Operator team not found", league_id)


def _first(teams: Iterable[Team], predicate) -> Optional[Team]:
    for team in teams:
        if predicate(team):
            return team
    return None
