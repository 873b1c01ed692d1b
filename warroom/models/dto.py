"""
Source-native data transfer objects.

Source A (Sleeper) payloads use snake_case; Source B (ESPN) payloads use
camelCase and are mapped through an alias generator. Unknown fields are
ignored so upstream additions never break decoding; missing required fields
or wrong types raise pydantic.ValidationError, which adapters turn into
DecodeError.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# SOURCE A (SLEEPER)
# =============================================================================

def _player_ids(value):
    # Sleeper fills unfilled starter slots with "0"
    if isinstance(value, list):
        return [str(v) for v in value if v not in (None, "0", 0, "")]
    return value


class SleeperLeagueSettings(BaseModel):
    """Subset of Sleeper league settings used for elimination detection."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Optional[int] = None
    is_chopped: Optional[bool] = None
    is_chopped_camel: Optional[bool] = Field(default=None, alias="isChopped")
    num_teams: Optional[int] = None
    playoff_week_start: Optional[int] = None

    @property
    def chopped(self) -> Optional[bool]:
        """True/False when the payload says so, None when it is silent."""
        if self.type == 3 or self.is_chopped or self.is_chopped_camel:
            return True
        if self.type is not None or self.is_chopped is not None or self.is_chopped_camel is not None:
            return False
        return None


class SleeperLeague(BaseModel):
    league_id: str
    name: str = ""
    season: str = ""
    status: Optional[str] = None
    total_rosters: int = 0
    settings: Optional[SleeperLeagueSettings] = None
    scoring_settings: Optional[Dict[str, Any]] = None
    roster_positions: List[str] = Field(default_factory=list)


class SleeperRoster(BaseModel):
    roster_id: int
    owner_id: Optional[str] = None
    players: Optional[List[str]] = None
    starters: Optional[List[str]] = None
    reserve: Optional[List[str]] = None

    @field_validator("players", "starters", mode="before")
    @classmethod
    def _drop_empty_slots(cls, value):
        return _player_ids(value)


class SleeperUser(BaseModel):
    user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def team_name(self) -> Optional[str]:
        if self.metadata:
            name = self.metadata.get("team_name")
            if isinstance(name, str) and name.strip():
                return name.strip()
        return None


class SleeperPlayer(BaseModel):
    """One entry of the /players/nfl directory (keyed by Sleeper player id)."""
    player_id: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    team: Optional[str] = None
    status: Optional[str] = None
    injury_status: Optional[str] = None
    search_rank: Optional[int] = None
    espn_id: Optional[str] = None
    yahoo_id: Optional[str] = None

    @field_validator("player_id", "espn_id", "yahoo_id", mode="before")
    @classmethod
    def _ids_as_text(cls, value):
        # Sleeper sends external ids as ints or strings depending on the player
        if value is None or value == "":
            return None
        return str(value)

    @property
    def display_name(self) -> Optional[str]:
        if self.full_name:
            return self.full_name
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or None

    @property
    def game_status(self) -> str:
        """Injury designation when there is one, else roster status, lower-cased."""
        return (self.injury_status or self.status or "unknown").lower()


class SleeperMatchup(BaseModel):
    """One roster's line in /league/{id}/matchups/{week} (a TeamScore DTO)."""
    roster_id: int
    matchup_id: Optional[int] = None
    points: Optional[float] = None
    custom_points: Optional[float] = None
    starters: Optional[List[str]] = None
    players: Optional[List[str]] = None
    players_points: Optional[Dict[str, float]] = None

    @field_validator("starters", "players", mode="before")
    @classmethod
    def _drop_empty_slots(cls, value):
        return _player_ids(value)


class SleeperBracketMatch(BaseModel):
    """One node of a Sleeper winners/losers bracket."""
    r: int  # round
    m: int  # match id
    t1: Optional[int] = None
    t2: Optional[int] = None
    w: Optional[int] = None
    l: Optional[int] = None
    p: Optional[int] = None  # placement game


# =============================================================================
# SOURCE B (ESPN)
# =============================================================================

class _EspnModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class EspnScoringItem(_EspnModel):
    stat_id: int
    points: float


class EspnScoringSettings(_EspnModel):
    scoring_items: List[EspnScoringItem] = Field(default_factory=list)


class EspnRosterSettings(_EspnModel):
    lineup_slot_counts: Dict[str, int] = Field(default_factory=dict)


class EspnLeagueSettings(_EspnModel):
    name: Optional[str] = None
    scoring_settings: Optional[EspnScoringSettings] = None
    roster_settings: Optional[EspnRosterSettings] = None


class EspnPlayerStat(_EspnModel):
    scoring_period_id: Optional[int] = None
    stat_source_id: Optional[int] = None  # 0 = actual, 1 = projected
    applied_total: Optional[float] = None
    stats: Optional[Dict[str, float]] = None


class EspnPlayer(_EspnModel):
    id: int
    full_name: Optional[str] = None
    default_position_id: Optional[int] = None
    pro_team_id: Optional[int] = None
    injury_status: Optional[str] = None
    stats: List[EspnPlayerStat] = Field(default_factory=list)


class EspnPlayerPoolEntry(_EspnModel):
    id: Optional[int] = None
    player: Optional[EspnPlayer] = None


class EspnRosterEntry(_EspnModel):
    player_id: int
    lineup_slot_id: Optional[int] = None
    player_pool_entry: Optional[EspnPlayerPoolEntry] = None


class EspnRoster(_EspnModel):
    entries: List[EspnRosterEntry] = Field(default_factory=list)


class EspnTeam(_EspnModel):
    id: int
    abbrev: Optional[str] = None
    location: Optional[str] = None
    nickname: Optional[str] = None
    name: Optional[str] = None
    owners: List[str] = Field(default_factory=list)
    playoff_seed: Optional[int] = None
    points: Optional[float] = None
    roster: Optional[EspnRoster] = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.location and self.nickname:
            return f"{self.location} {self.nickname}"
        return self.abbrev or f"Team {self.id}"


class EspnMember(_EspnModel):
    id: str
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def best_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.display_name or self.id


class EspnMatchupSide(_EspnModel):
    team_id: int
    total_points: Optional[float] = None
    total_points_live: Optional[float] = None
    total_projected_points_live: Optional[float] = None


class EspnScheduleEntry(_EspnModel):
    id: Optional[int] = None
    matchup_period_id: Optional[int] = None
    home: Optional[EspnMatchupSide] = None
    away: Optional[EspnMatchupSide] = None


class EspnLeagueStatus(_EspnModel):
    current_matchup_period: Optional[int] = None
    is_active: Optional[bool] = None


class EspnLeague(_EspnModel):
    id: int
    season_id: Optional[int] = None
    settings: Optional[EspnLeagueSettings] = None
    scoring_settings: Optional[EspnScoringSettings] = None
    teams: List[EspnTeam] = Field(default_factory=list)
    members: List[EspnMember] = Field(default_factory=list)
    schedule: List[EspnScheduleEntry] = Field(default_factory=list)
    status: Optional[EspnLeagueStatus] = None

    @property
    def display_name(self) -> str:
        if self.settings and self.settings.name:
            return self.settings.name
        return f"ESPN League {self.id}"

    @property
    def scoring_items(self) -> List[EspnScoringItem]:
        if self.scoring_settings and self.scoring_settings.scoring_items:
            return self.scoring_settings.scoring_items
        if self.settings and self.settings.scoring_settings:
            return self.settings.scoring_settings.scoring_items
        return []


class EspnTeamScore(BaseModel):
    """Source B TeamScore DTO derived from the schedule for one week."""
    team_id: int
    points: Optional[float] = None
    projected_points: Optional[float] = None
    opponent_id: Optional[int] = None
    is_home: bool = False
