"""
Elimination Repository for the append-only elimination ledger.

Usage:
    repo = EliminationRepository(db)
    added = repo.append(league_id, ranking.new_events)
    history = repo.history(league_id)
"""
from typing import Iterable, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from warroom.core.logging import get_logger
from warroom.models.ledger import EliminationEventRecord
from warroom.models.unified import EliminationEvent
from warroom.repositories.base import BaseRepository

logger = get_logger(__name__)


class EliminationRepository(BaseRepository[EliminationEventRecord]):
    """Repository for a league's elimination history."""

    def __init__(self, db: Session):
        super().__init__(EliminationEventRecord, db)

    def history(self, league_id: str) -> List[EliminationEvent]:
        """All events for a league, oldest week first, then by rank."""
        records = (
            self.query()
            .filter(EliminationEventRecord.league_id == league_id)
            .order_by(EliminationEventRecord.week, EliminationEventRecord.rank)
            .all()
        )
        return [r.to_event() for r in records]

    def is_recorded(self, league_id: str, team_id: str) -> bool:
        return self.exists_where(
            EliminationEventRecord.league_id == league_id,
            EliminationEventRecord.team_id == team_id,
        )

    def append(self, league_id: str, events: Iterable[EliminationEvent]) -> List[EliminationEvent]:
        """
        Append events that are not yet in the ledger.

        Events for a team already recorded are skipped, never rewritten.

        Returns:
            The events actually inserted
        """
        added: List[EliminationEvent] = []
        for event in events:
            if event.league_id != league_id:
                raise ValueError(
                    f"Event {event.id} belongs to league {event.league_id}, not {league_id}"
                )
            if self.is_recorded(league_id, event.team_id):
                continue
            self.add(EliminationEventRecord.from_event(event))
            added.append(event)

        if not added:
            return added

        try:
            self.save()
        except IntegrityError:
            # A concurrent writer recorded one of these teams first.
            self.rollback()
            logger.warning(f"Elimination ledger conflict for league {league_id}; retrying one by one")
            return self._append_individually(league_id, added)

        logger.info(f"Recorded {len(added)} elimination(s) for league {league_id}")
        return added

    def _append_individually(self, league_id: str, events: List[EliminationEvent]) -> List[EliminationEvent]:
        added: List[EliminationEvent] = []
        for event in events:
            if self.is_recorded(league_id, event.team_id):
                continue
            self.add(EliminationEventRecord.from_event(event))
            try:
                self.save()
            except IntegrityError:
                self.rollback()
                continue
            added.append(event)
        return added
