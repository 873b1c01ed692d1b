"""
Unified model construction.

Merges one refresh cycle's source DTOs into League / Team / Player /
Matchup objects. Everything is rebuilt from scratch each cycle.

Elimination leagues (Sleeper only) build teams from the roster list so that
eliminated teams are still seen. A team is active for the week when it has
an owner, at least one rostered player, and a non-empty starter list in the
week's matchup entry; every other team gets an empty week roster and lands
in the graveyard.

If that filter leaves no active team while some teams do have starters, the
filter is relaxed to "has starters" and the recovery is logged. A week with
no matchup entries at all (not played yet, off-season) is relaxed further to
"has an owner and rostered players", using each roster's current lineup;
such a week is flagged so no elimination is read from it.

Players are filled in from the Sleeper player directory when one is given:
name, position, club, game status and the ids other platforms use.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from warroom.core.logging import get_logger
from warroom.models.dto import (
    EspnLeague,
    EspnRosterEntry,
    EspnTeam,
    EspnTeamScore,
    SleeperLeague,
    SleeperMatchup,
    SleeperRoster,
    SleeperUser,
)
from warroom.models.unified import League, LeagueSource, LineupConfig, Matchup, Player, Team
from warroom.services.player_directory import PlayerIndex, espn_club, external_ids
from warroom.services.scoring_engine import ScoringEngine, ScoringRules

logger = get_logger(__name__)

PROJECTION_FALLBACK_FACTOR = 1.05
SLEEPER_AVATAR_URL = "https://sleepercdn.com/avatars/{avatar}"
SLEEPER_NON_STARTER_SLOTS = {"BN", "IR", "TAXI"}

# ESPN lineupSlotId -> slot name
ESPN_LINEUP_SLOTS: Dict[int, str] = {
    0: "QB", 2: "RB", 4: "WR", 6: "TE", 16: "DST", 17: "K",
    20: "BN", 21: "IR", 23: "FLEX",
}
ESPN_BENCH_SLOTS = {20, 21}

# ESPN defaultPositionId -> position
ESPN_POSITIONS: Dict[int, str] = {1: "QB", 2: "RB", 3: "WR", 4: "TE", 5: "K", 16: "DST"}

StatLines = Mapping[str, Mapping[str, float]]


@dataclass
class BuildResult:
    """Unified objects for one league-week."""
    league: League
    teams: List[Team]
    matchups: List[Matchup] = field(default_factory=list)
    relaxed_filter: bool = False
    week_has_data: bool = True


def detect_elimination_mode(league: SleeperLeague) -> bool:
    """Sleeper "chopped"/guillotine leagues: settings.type == 3 or is_chopped truthy."""
    if league.settings is None:
        return False
    return bool(league.settings.chopped)


def _projected(current: float, projected: Optional[float]) -> float:
    if projected:
        return projected
    return current * PROJECTION_FALLBACK_FACTOR


class ModelBuilder:
    """Builds unified models from Sleeper or ESPN DTOs."""

    def __init__(self, engine: Optional[ScoringEngine] = None):
        self.engine = engine or ScoringEngine()

    # ========================================================================
    # Sleeper (Source A)
    # ========================================================================

    def sleeper_league(self, dto: SleeperLeague, rules: ScoringRules) -> League:
        positions = dto.roster_positions or []
        return League(
            id=dto.league_id,
            source=LeagueSource.SLEEPER,
            name=dto.name or f"Sleeper League {dto.league_id}",
            season=dto.season,
            scoring_rules=dict(rules.multipliers),
            lineup=LineupConfig(
                roster_size=len(positions),
                starter_slots=tuple(p for p in positions if p not in SLEEPER_NON_STARTER_SLOTS),
            ),
            elimination_mode=detect_elimination_mode(dto),
            total_rosters=dto.total_rosters,
        )

    def build_sleeper(
        self,
        league_dto: SleeperLeague,
        rosters: Sequence[SleeperRoster],
        users: Sequence[SleeperUser],
        matchups: Sequence[SleeperMatchup],
        week: int,
        rules: ScoringRules,
        stat_lines: Optional[StatLines] = None,
        directory: Optional[PlayerIndex] = None,
    ) -> BuildResult:
        """
        Build one Sleeper league-week.

        Args:
            league_dto: League settings
            rosters: Every roster in the league (eliminated ones included)
            users: League members
            matchups: The week's per-roster matchup entries
            week: Week number
            rules: Resolved scoring rules
            stat_lines: Weekly stat feed (player id -> stat line), if loaded
            directory: Player directory for names, positions and clubs
        """
        league = self.sleeper_league(league_dto, rules)
        users_by_id = {u.user_id: u for u in users}
        matchup_by_roster = {m.roster_id: m for m in matchups}
        week_has_data = bool(matchups)

        built: List[Tuple[Team, bool, bool, List[Player]]] = []
        for roster in rosters:
            entry = matchup_by_roster.get(roster.roster_id)
            user = users_by_id.get(roster.owner_id) if roster.owner_id else None
            players = self._sleeper_players(league_dto, roster, entry, rules, stat_lines, directory)

            team = Team(
                id=str(roster.roster_id),
                league_id=league.id,
                owner_name=self._sleeper_owner_name(user, roster.roster_id),
                owner_id=roster.owner_id,
                roster_id=roster.roster_id,
                avatar_url=SLEEPER_AVATAR_URL.format(avatar=user.avatar) if user and user.avatar else None,
            )
            has_starters = bool(entry and entry.starters)
            active = bool(roster.owner_id) and bool(roster.players) and has_starters and bool(players)
            built.append((team, active, has_starters, players))

        relaxed = False
        if league.elimination_mode:
            if built and not any(active for _, active, _, _ in built) and any(s for _, _, s, _ in built):
                logger.warning(
                    f"League {league.id} week {week}: active-team filter matched nothing; "
                    f"relaxing to teams with starters"
                )
                built = [(team, has_starters, has_starters, players) for team, _, has_starters, players in built]
                relaxed = True
            elif built and not week_has_data and not any(active for _, active, _, _ in built):
                logger.warning(
                    f"League {league.id} week {week}: no matchup entries; "
                    f"showing rosters and reading no eliminations from this week"
                )
                built = [
                    (team, bool(team.owner_id) and bool(players), has_starters, players)
                    for team, _, has_starters, players in built
                ]
                relaxed = True
        else:
            built = [(team, True, has_starters, players) for team, _, has_starters, players in built]

        teams: List[Team] = []
        for team, active, _, players in built:
            if active:
                team.roster = players
            self._score_team(team)
            teams.append(team)

        return BuildResult(
            league=league,
            teams=teams,
            matchups=self._sleeper_matchups(league, week, teams, matchups),
            relaxed_filter=relaxed,
            week_has_data=week_has_data,
        )

    @staticmethod
    def _sleeper_owner_name(user: Optional[SleeperUser], roster_id: int) -> str:
        if user is not None:
            return user.display_name or user.team_name or user.username or f"Team {roster_id}"
        return f"Team {roster_id}"

    def _sleeper_players(
        self,
        league_dto: SleeperLeague,
        roster: SleeperRoster,
        entry: Optional[SleeperMatchup],
        rules: ScoringRules,
        stat_lines: Optional[StatLines],
        directory: Optional[PlayerIndex] = None,
    ) -> List[Player]:
        # Without a matchup entry the roster's current lineup stands in, unscored
        if entry is not None:
            starters = entry.starters or []
            listed = entry.players or roster.players or []
            source_points = entry.players_points or {}
        else:
            starters = roster.starters or []
            listed = roster.players or []
            source_points = {}

        slots = [p for p in (league_dto.roster_positions or []) if p not in SLEEPER_NON_STARTER_SLOTS]
        players: List[Player] = []
        for player_id in OrderedDict.fromkeys(starters + listed):
            is_starter = player_id in starters
            slot = "BN"
            if is_starter:
                index = starters.index(player_id)
                slot = slots[index] if index < len(slots) else "FLEX"

            info = directory.get(player_id) if directory is not None else None
            players.append(Player(
                id=player_id,
                name=(info.display_name if info else None) or player_id,
                position=(info.position if info else None) or slot,
                nfl_team=info.team if info else None,
                game_status=info.game_status if info else "unknown",
                current_points=float(source_points.get(player_id, 0.0)),
                is_starter=is_starter,
                lineup_slot=slot,
                external_ids=external_ids(info) if info else {"sleeper": player_id},
            ))

        self.engine.apply(players, stat_lines, rules)
        for player in players:
            player.projected_points = player.current_points * PROJECTION_FALLBACK_FACTOR
        return players

    @staticmethod
    def _sleeper_matchups(
        league: League,
        week: int,
        teams: Sequence[Team],
        entries: Sequence[SleeperMatchup],
    ) -> List[Matchup]:
        if league.elimination_mode:
            # Ranked as a whole league; no pairings
            return [Matchup(league_id=league.id, week=week)]

        teams_by_roster = {t.roster_id: t for t in teams}
        pairs: Dict[int, List[Team]] = OrderedDict()
        for entry in entries:
            if entry.matchup_id is None:
                continue
            team = teams_by_roster.get(entry.roster_id)
            if team is not None:
                pairs.setdefault(entry.matchup_id, []).append(team)

        return [
            Matchup(league_id=league.id, week=week, home=pair[0], away=pair[1] if len(pair) > 1 else None)
            for pair in pairs.values()
        ]

    # ========================================================================
    # ESPN (Source B)
    # ========================================================================

    def espn_league(self, dto: EspnLeague, rules: ScoringRules, season: str) -> League:
        slot_counts = {}
        if dto.settings and dto.settings.roster_settings:
            slot_counts = dto.settings.roster_settings.lineup_slot_counts
        starter_slots: List[str] = []
        roster_size = 0
        for slot_id, count in sorted(slot_counts.items(), key=lambda kv: int(kv[0])):
            roster_size += count
            if int(slot_id) in ESPN_BENCH_SLOTS:
                continue
            starter_slots.extend([ESPN_LINEUP_SLOTS.get(int(slot_id), f"SLOT{slot_id}")] * count)

        return League(
            id=str(dto.id),
            source=LeagueSource.ESPN,
            name=dto.display_name,
            season=str(dto.season_id or season),
            scoring_rules=dict(rules.multipliers),
            lineup=LineupConfig(roster_size=roster_size, starter_slots=tuple(starter_slots)),
            elimination_mode=False,
            total_rosters=len(dto.teams),
        )

    def build_espn(
        self,
        dto: EspnLeague,
        scores: Sequence[EspnTeamScore],
        week: int,
        rules: ScoringRules,
        season: str,
        directory: Optional[PlayerIndex] = None,
    ) -> BuildResult:
        """
        Build one ESPN league-week from the league document and its week scores.

        ``directory`` cross-references ESPN players to their Sleeper ids.
        """
        league = self.espn_league(dto, rules, season)
        members = {m.id: m for m in dto.members}
        score_by_team = {s.team_id: s for s in scores}

        teams: List[Team] = []
        for espn_team in dto.teams:
            team = Team(
                id=str(espn_team.id),
                league_id=league.id,
                owner_name=self._espn_owner_name(espn_team, members),
                owner_id=espn_team.owners[0] if espn_team.owners else None,
                seed=espn_team.playoff_seed,
            )
            team.roster = [self._espn_player(e, week, directory) for e in (espn_team.roster.entries if espn_team.roster else [])]
            self._score_team(team)

            score = score_by_team.get(espn_team.id)
            if score is not None and score.projected_points:
                team.projected_score = score.projected_points
            teams.append(team)

        by_id = {t.id: t for t in teams}
        matchups: List[Matchup] = []
        for score in scores:
            if not score.is_home:
                continue
            matchups.append(Matchup(
                league_id=league.id,
                week=week,
                home=by_id.get(str(score.team_id)),
                away=by_id.get(str(score.opponent_id)) if score.opponent_id is not None else None,
            ))

        return BuildResult(league=league, teams=teams, matchups=matchups)

    @staticmethod
    def _espn_owner_name(team: EspnTeam, members: Mapping[str, object]) -> str:
        for owner_id in team.owners:
            member = members.get(owner_id)
            if member is not None:
                return member.best_name
        return team.display_name

    @staticmethod
    def _espn_player(entry: EspnRosterEntry, week: int, directory: Optional[PlayerIndex] = None) -> Player:
        espn_player = entry.player_pool_entry.player if entry.player_pool_entry else None
        actual = projected = None
        if espn_player is not None:
            for stat in espn_player.stats:
                if stat.scoring_period_id != week:
                    continue
                if stat.stat_source_id == 0:
                    actual = stat.applied_total
                elif stat.stat_source_id == 1:
                    projected = stat.applied_total

        espn_id = str(entry.player_id)
        ids = {"espn": espn_id}
        sleeper_id = directory.sleeper_id_for_espn(espn_id) if directory is not None else None
        if sleeper_id:
            ids["sleeper"] = sleeper_id

        slot_id = entry.lineup_slot_id
        current = float(actual or 0.0)
        return Player(
            id=espn_id,
            name=(espn_player.full_name if espn_player and espn_player.full_name else espn_id),
            position=ESPN_POSITIONS.get(espn_player.default_position_id, "FLEX") if espn_player else "FLEX",
            nfl_team=espn_club(espn_player.pro_team_id) if espn_player else None,
            game_status=(espn_player.injury_status or "unknown").lower() if espn_player else "unknown",
            current_points=current,
            projected_points=_projected(current, projected),
            is_starter=slot_id is not None and slot_id not in ESPN_BENCH_SLOTS,
            lineup_slot=ESPN_LINEUP_SLOTS.get(slot_id, "FLEX") if slot_id is not None else None,
            external_ids=ids,
        )

    # ========================================================================
    # Shared
    # ========================================================================

    def _score_team(self, team: Team) -> None:
        team.current_score = self.engine.score_team(team)
        team.projected_score = _projected(team.current_score, self.engine.projected_team(team))
