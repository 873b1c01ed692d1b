"""
Weekly ranking for elimination ("chopped" / guillotine) leagues.

Per league-week:
1. Partition teams into active (at least one rostered player) and graveyard.
2. Stable sort of active teams by score, highest first.
3. Elimination count is 2 once the active pool reaches 18 teams, else 1.
4. Status by rank over the active count N:
   rank 1 champion; inside the bottom zone critical; past 3N/4 danger;
   past N/2 warning; otherwise safe.
5. Graveyard teams become EliminationEvents dated to the previous week.

The elimination count is not clamped to the pool size: a pool no larger than
the count has every non-champion team in the zone.
"""
from typing import List, Optional, Sequence, Tuple

from warroom.core.logging import get_logger
from warroom.models.unified import (
    ATTRITION_NARRATIVE,
    EliminationEvent,
    EliminationStatus,
    Ranking,
    Team,
    TeamRanking,
)

logger = get_logger(__name__)

LARGE_LEAGUE_THRESHOLD = 18
LARGE_LEAGUE_ELIMINATIONS = 2
DEFAULT_ELIMINATIONS = 1
ATTRITION_DRAMA_METER = 0.5


def elimination_count_for(active_count: int) -> int:
    """Number of teams on the chopping block for a pool of ``active_count``."""
    if active_count >= LARGE_LEAGUE_THRESHOLD:
        return LARGE_LEAGUE_ELIMINATIONS
    return DEFAULT_ELIMINATIONS


def status_for_rank(rank: int, active_count: int, elimination_count: int) -> EliminationStatus:
    """Elimination status for a 1-based rank among ``active_count`` teams."""
    if rank == 1:
        return EliminationStatus.CHAMPION
    if rank > active_count - elimination_count:
        return EliminationStatus.CRITICAL
    if rank > (active_count * 3) // 4:
        return EliminationStatus.DANGER
    if rank > active_count // 2:
        return EliminationStatus.WARNING
    return EliminationStatus.SAFE


class EliminationRankingEngine:
    """Builds Ranking objects for elimination leagues."""

    def partition(self, teams: Sequence[Team]) -> Tuple[List[Team], List[Team]]:
        """Split teams into (active, graveyard), keeping input order within each."""
        active: List[Team] = []
        graveyard: List[Team] = []
        for team in teams:
            if team.has_players:
                active.append(team)
            else:
                graveyard.append(team)
        return active, graveyard

    def rank(self, league_id: str, week: int, teams: Sequence[Team]) -> Ranking:
        """
        Rank one league-week.

        Args:
            league_id: League the teams belong to
            week: Week being ranked
            teams: Every team in the league, in source collection order

        Returns:
            Ranking with active entries, graveyard entries and the new
            EliminationEvents for the graveyard
        """
        active, graveyard = self.partition(teams)

        # sorted() is stable, so equal scores keep collection order
        ordered = sorted(active, key=lambda t: t.current_score, reverse=True)
        total = len(ordered)
        elimination_count = elimination_count_for(total)

        if 0 < total <= elimination_count:
            logger.warning(
                f"League {league_id} week {week}: {total} active team(s) with "
                f"{elimination_count} elimination(s); no team is outside the zone"
            )

        safety_line = self._safety_line_score(ordered, elimination_count)
        entries = tuple(
            self._rank_active(team, index + 1, total, elimination_count, safety_line, week)
            for index, team in enumerate(ordered)
        )

        graveyard_entries, events = self._bury(league_id, week, graveyard, total)

        scores = [e.score for e in entries]
        average = sum(scores) / len(scores) if scores else 0.0

        ranking = Ranking(
            league_id=league_id,
            week=week,
            entries=entries,
            elimination_count=elimination_count,
            graveyard=graveyard_entries,
            new_events=events,
            average_score=average,
            highest_score=max(scores) if scores else 0.0,
            lowest_score=min(scores) if scores else 0.0,
        )

        logger.info(
            f"Ranked league {league_id} week {week}: {total} active, "
            f"{len(graveyard_entries)} in graveyard, {elimination_count} on the block"
        )
        return ranking

    @staticmethod
    def _safety_line_score(ordered: Sequence[Team], elimination_count: int) -> Optional[float]:
        """Score of the lowest team outside the elimination zone, if any."""
        last_safe_index = len(ordered) - elimination_count - 1
        if last_safe_index < 0:
            return None
        return ordered[last_safe_index].current_score

    @staticmethod
    def _rank_active(
        team: Team,
        rank: int,
        total: int,
        elimination_count: int,
        safety_line: Optional[float],
        week: int,
    ) -> TeamRanking:
        in_zone = rank > total - elimination_count
        if in_zone:
            survival = 0.0
        else:
            survival = max(0.0, min(1.0, (total - rank) / total))

        return TeamRanking(
            team=team,
            score=team.current_score,
            rank=rank,
            status=status_for_rank(rank, total, elimination_count),
            is_eliminated=False,
            points_from_safety=(team.current_score - safety_line) if safety_line is not None else 0.0,
            survival_probability=survival,
            weeks_alive=week,
        )

    @staticmethod
    def _bury(
        league_id: str,
        week: int,
        graveyard: Sequence[Team],
        active_count: int,
    ) -> Tuple[Tuple[TeamRanking, ...], Tuple[EliminationEvent, ...]]:
        entries: List[TeamRanking] = []
        events: List[EliminationEvent] = []
        for index, team in enumerate(graveyard):
            rank = active_count + index + 1
            entry = TeamRanking(
                team=team,
                score=team.current_score,
                rank=rank,
                status=EliminationStatus.ELIMINATED,
                is_eliminated=True,
                points_from_safety=0.0,
                survival_probability=0.0,
                weeks_alive=week - 1,
            )
            entries.append(entry)
            events.append(EliminationEvent(
                id=f"eliminated_{team.id}",
                league_id=league_id,
                team_id=team.id,
                owner_name=team.owner_name,
                week=week - 1,
                score=team.current_score,
                rank=rank,
                margin=0.0,
                drama_meter=ATTRITION_DRAMA_METER,
                narrative=ATTRITION_NARRATIVE,
            ))
        return tuple(entries), tuple(events)
