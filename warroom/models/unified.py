"""
Unified fantasy models, independent of the source platform.

League/Team/Player/Matchup are rebuilt in full on every refresh cycle and are
treated as immutable snapshots once scores for the week are computed.
Ranking is recomputed whenever new scores arrive. EliminationEvent is the
league's append-only history and outlives refresh cycles.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class LeagueSource(str, Enum):
    """Platform a league was fetched from."""
    SLEEPER = "sleeper"  # Source A
    ESPN = "espn"  # Source B


class EliminationStatus(str, Enum):
    """Weekly standing of a team in an elimination league."""
    CHAMPION = "champion"
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"
    CRITICAL = "critical"
    ELIMINATED = "eliminated"


# Narrative for teams that dropped out by running out of players
ATTRITION_NARRATIVE = "Left with no players to field..."


@dataclass(frozen=True)
class LineupConfig:
    """Roster size and starting slots for a league."""
    roster_size: int = 0
    starter_slots: Tuple[str, ...] = ()

    @property
    def starter_count(self) -> int:
        return len(self.starter_slots)


@dataclass
class Player:
    """
    A rostered NFL player as seen in one week's snapshot.

    ``id`` is source-native (Sleeper player id or ESPN player id);
    ``external_ids`` cross-references the other platforms when known.
    """
    id: str
    name: str = ""
    position: str = "FLEX"
    nfl_team: Optional[str] = None
    game_status: str = "unknown"
    current_points: float = 0.0
    projected_points: float = 0.0
    is_starter: bool = False
    lineup_slot: Optional[str] = None
    external_ids: Dict[str, str] = field(default_factory=dict)


@dataclass
class Team:
    """A fantasy team within exactly one league."""
    id: str
    league_id: str
    owner_name: str
    roster: List[Player] = field(default_factory=list)
    current_score: float = 0.0
    projected_score: float = 0.0
    owner_id: Optional[str] = None
    roster_id: Optional[int] = None
    avatar_url: Optional[str] = None
    seed: Optional[int] = None

    @property
    def starters(self) -> List[Player]:
        return [p for p in self.roster if p.is_starter]

    @property
    def bench(self) -> List[Player]:
        return [p for p in self.roster if not p.is_starter]

    @property
    def has_players(self) -> bool:
        return len(self.roster) > 0


@dataclass(frozen=True)
class League:
    """League settings fetched once per refresh cycle."""
    id: str
    source: LeagueSource
    name: str
    season: str
    scoring_rules: Dict[str, float] = field(default_factory=dict)
    lineup: LineupConfig = field(default_factory=LineupConfig)
    elimination_mode: bool = False
    total_rosters: int = 0


@dataclass
class Matchup:
    """
    Pairing of two teams for a week.

    Elimination leagues have no pairwise matchups; their matchup carries no
    teams and the week's full-league Ranking is used instead.
    """
    league_id: str
    week: int
    home: Optional[Team] = None
    away: Optional[Team] = None
    last_updated: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_pairwise(self) -> bool:
        return self.home is not None and self.away is not None


@dataclass(frozen=True)
class TeamRanking:
    """One team's line in a weekly ranking."""
    team: Team
    score: float
    rank: int
    status: EliminationStatus
    is_eliminated: bool = False
    points_from_safety: float = 0.0
    survival_probability: float = 0.0
    weeks_alive: int = 0

    @property
    def team_id(self) -> str:
        return self.team.id


@dataclass(frozen=True)
class EliminationEvent:
    """
    Permanent record of a team's removal from an elimination league.

    Never mutated or deleted once created.
    """
    id: str
    league_id: str
    team_id: str
    owner_name: str
    week: int
    score: float
    rank: int
    margin: float = 0.0
    drama_meter: float = 0.5
    narrative: str = ATTRITION_NARRATIVE
    cause: str = "eliminated-by-attrition"
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class Ranking:
    """Ordered weekly ranking for a league."""
    league_id: str
    week: int
    entries: Tuple[TeamRanking, ...]
    elimination_count: int
    graveyard: Tuple[TeamRanking, ...] = ()
    new_events: Tuple[EliminationEvent, ...] = ()
    average_score: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    generated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def active_count(self) -> int:
        return len(self.entries)

    @property
    def eliminated_this_week(self) -> Tuple[TeamRanking, ...]:
        """Bottom ``elimination_count`` active entries (the chopping block)."""
        if self.elimination_count <= 0:
            return ()
        return self.entries[-self.elimination_count:]

    @property
    def cutoff_score(self) -> float:
        return self.lowest_score

    @property
    def total_survivors(self) -> int:
        return sum(1 for e in self.entries if not e.is_eliminated)

    def entry_for(self, team_id: str) -> Optional[TeamRanking]:
        for entry in self.entries + self.graveyard:
            if entry.team.id == team_id:
                return entry
        return None


@dataclass(frozen=True)
class LeagueSnapshot:
    """Everything one refresh cycle produced for a league and week."""
    league: League
    week: int
    teams: Tuple[Team, ...]
    matchups: Tuple[Matchup, ...] = ()
    ranking: Optional[Ranking] = None
    fetched_at: datetime = field(default_factory=datetime.utcnow)
