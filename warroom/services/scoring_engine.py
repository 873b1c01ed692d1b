"""
Fantasy scoring.

A player's score is ``sum(stat_value * multiplier)`` over the stat names present
in both the player's stat line and the league's rule table. Stats the table
does not mention contribute nothing. A team's score is the sum of its
starters' scores; bench players never count.

Everything in ScoringEngine is pure: identical (stat line, rules) inputs
always produce the identical float, independent of dict insertion order.
"""
import math
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from warroom.core.logging import get_logger
from warroom.models.dto import EspnScoringItem
from warroom.models.unified import Player, Team

logger = get_logger(__name__)


# Standard PPR table used when a league publishes no scoring settings
DEFAULT_PPR_RULES: Dict[str, float] = {
    # Passing
    "pass_yd": 0.04,
    "pass_td": 4.0,
    "pass_int": -1.0,
    # Rushing
    "rush_yd": 0.1,
    "rush_td": 6.0,
    # Receiving
    "rec": 1.0,
    "rec_yd": 0.1,
    "rec_td": 6.0,
    # Kicking
    "fgm": 3.0,
    "xpm": 1.0,
    # Defense
    "def_td": 6.0,
    "def_int": 2.0,
    "def_fr": 2.0,
    "def_sack": 1.0,
    "def_safe": 2.0,
    # Fumbles
    "fum_lost": -1.0,
}

# ESPN statId -> stat name used by the weekly stat feed
ESPN_STAT_ID_TO_KEY: Dict[int, str] = {
    # Passing
    0: "pass_att",
    1: "pass_cmp",
    3: "pass_yd",
    4: "pass_td",
    15: "pass_td_40p",
    16: "pass_td_50p",
    19: "pass_2pt",
    20: "pass_int",
    # Rushing
    23: "rush_att",
    24: "rush_yd",
    25: "rush_td",
    26: "rush_2pt",
    35: "rush_td_40p",
    36: "rush_td_50p",
    # Receiving
    41: "rec",
    42: "rec_yd",
    43: "rec_td",
    44: "rec_2pt",
    45: "rec_td_40p",
    46: "rec_td_50p",
    58: "rec_tgt",
    # Fumbles
    68: "fum",
    72: "fum_lost",
    # Kicking
    74: "fgm_50p",
    77: "fgm_40_49",
    80: "fgm_0_39",
    83: "fgm",
    86: "xpm",
    88: "xpmiss",
    # Defense / special teams
    95: "def_int",
    96: "def_fr",
    97: "blk_kick",
    98: "def_safe",
    99: "def_sack",
    101: "def_kr_td",
    102: "def_pr_td",
    103: "def_fum_td",
    104: "def_int_td",
}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class ScoringRules(BaseModel):
    """
    Validated stat-name -> multiplier table for one league.

    ``basis`` records where the table came from (for logs and the API).
    """
    model_config = ConfigDict(frozen=True)

    multipliers: Dict[str, float]
    basis: str = "default"

    @field_validator("multipliers")
    @classmethod
    def _finite(cls, value: Dict[str, float]) -> Dict[str, float]:
        for stat, mult in value.items():
            if not math.isfinite(mult):
                raise ValueError(f"Multiplier for {stat} is not finite")
        return value

    @classmethod
    def default(cls) -> "ScoringRules":
        return cls(multipliers=dict(DEFAULT_PPR_RULES), basis="default PPR")

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, object]], basis: str = "league settings") -> Optional["ScoringRules"]:
        """
        Build rules from a loosely typed settings dict.

        Non-numeric entries are dropped and logged. Returns None when nothing
        numeric is left, so the caller can fall back to the default table.
        """
        if not raw:
            return None

        multipliers: Dict[str, float] = {}
        skipped: List[str] = []
        for stat, value in raw.items():
            if _is_number(value):
                multipliers[str(stat)] = float(value)
            else:
                skipped.append(str(stat))

        if skipped:
            logger.debug(f"Ignored {len(skipped)} non-numeric scoring entries: {', '.join(sorted(skipped)[:10])}")

        if not multipliers:
            return None
        return cls(multipliers=multipliers, basis=basis)

    @classmethod
    def from_espn_items(cls, items: Iterable[EspnScoringItem]) -> Optional["ScoringRules"]:
        """Translate ESPN scoringItems into stat-name multipliers."""
        multipliers: Dict[str, float] = {}
        unmapped = 0
        for item in items:
            key = ESPN_STAT_ID_TO_KEY.get(item.stat_id)
            if key is None:
                unmapped += 1
                continue
            multipliers[key] = float(item.points)

        if unmapped:
            logger.debug(f"{unmapped} ESPN scoring items have no stat mapping")

        if not multipliers:
            return None
        return cls(multipliers=multipliers, basis=f"ESPN scoringItems ({len(multipliers)} rules)")


class ScoringEngine:
    """Pure scoring functions over stat lines and rule tables."""

    @staticmethod
    def score_stats(stats: Mapping[str, float], rules: ScoringRules) -> float:
        """
        Points for one stat line.

        Stat names are visited in sorted order so floating-point summation
        does not depend on dict ordering.
        """
        total = 0.0
        multipliers = rules.multipliers
        for stat in sorted(stats):
            mult = multipliers.get(stat)
            if mult is None:
                continue
            value = stats[stat]
            if not _is_number(value):
                continue
            total += value * mult
        return total

    @staticmethod
    def score_breakdown(stats: Mapping[str, float], rules: ScoringRules) -> Dict[str, float]:
        """Per-stat contributions (nonzero only) behind score_stats."""
        breakdown: Dict[str, float] = {}
        for stat in sorted(stats):
            mult = rules.multipliers.get(stat)
            value = stats[stat]
            if mult is None or not _is_number(value):
                continue
            points = value * mult
            if points != 0:
                breakdown[stat] = points
        return breakdown

    @staticmethod
    def score_team(team: Team) -> float:
        """Sum of the team's starters' current points."""
        return sum(p.current_points for p in team.roster if p.is_starter)

    @staticmethod
    def projected_team(team: Team) -> float:
        return sum(p.projected_points for p in team.roster if p.is_starter)

    def player_points(
        self,
        player_id: str,
        stat_lines: Optional[Mapping[str, Mapping[str, float]]],
        rules: ScoringRules,
        fallback: float = 0.0,
    ) -> float:
        """
        Points for a player from the weekly stat feed, or ``fallback`` when the
        feed has no line for them.
        """
        if stat_lines:
            line = stat_lines.get(player_id)
            if line:
                return self.score_stats(line, rules)
        return fallback

    def apply(self, players: Iterable[Player], stat_lines, rules: ScoringRules) -> None:
        """Fill current_points on freshly built players before the snapshot is published."""
        for player in players:
            player.current_points = self.player_points(player.id, stat_lines, rules, player.current_points)


class ScoringRuleResolver:
    """
    Resolves and caches the typed rule table per league.

    Resolution happens once per league id; later calls return the cached
    table until ``invalidate`` is called (e.g., on a forced refresh).
    """

    def __init__(self):
        self._rules: Dict[str, ScoringRules] = {}

    def resolve(self, league_id: str, candidate: Optional[ScoringRules]) -> ScoringRules:
        cached = self._rules.get(league_id)
        if cached is not None:
            return cached

        if candidate is None:
            logger.info(f"League {league_id} has no scoring settings; using default PPR table")
            rules = ScoringRules.default()
        else:
            rules = candidate
            logger.info(f"League {league_id} scoring basis: {rules.basis}")

        self._rules[league_id] = rules
        return rules

    def get(self, league_id: str) -> Optional[ScoringRules]:
        return self._rules.get(league_id)

    def invalidate(self, league_id: str) -> None:
        self._rules.pop(league_id, None)
