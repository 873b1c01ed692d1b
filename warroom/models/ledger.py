"""
Persistent elimination ledger.

One row per (league, team) elimination. Rows are inserted once and never
updated or deleted; the unique constraint lets repeated refresh cycles
re-offer the same graveyard without duplicating history.
"""
from datetime import datetime

from sqlalchemy import Column, String, Float, Integer, DateTime, Text, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

from warroom.models.unified import EliminationEvent

Base = declarative_base()


class EliminationEventRecord(Base):
    """Stored EliminationEvent."""
    __tablename__ = "elimination_events"

    id = Column(String(128), primary_key=True)  # "eliminated_{team_id}" scoped by league
    league_id = Column(String(64), nullable=False, index=True)
    team_id = Column(String(64), nullable=False)
    owner_name = Column(String(255), nullable=False)
    week = Column(Integer, nullable=False)
    score = Column(Float, nullable=False, default=0.0)
    rank = Column(Integer, nullable=False)
    margin = Column(Float, nullable=False, default=0.0)
    drama_meter = Column(Float, nullable=False, default=0.5)
    narrative = Column(Text, nullable=False)
    cause = Column(String(50), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('league_id', 'team_id', name='uq_elimination_league_team'),
        Index('ix_elimination_league_week', 'league_id', 'week'),
    )

    @classmethod
    def from_event(cls, event: EliminationEvent) -> "EliminationEventRecord":
        return cls(
            id=f"{event.league_id}:{event.id}",
            league_id=event.league_id,
            team_id=event.team_id,
            owner_name=event.owner_name,
            week=event.week,
            score=event.score,
            rank=event.rank,
            margin=event.margin,
            drama_meter=event.drama_meter,
            narrative=event.narrative,
            cause=event.cause,
            created_at=event.created_at,
        )

    def to_event(self) -> EliminationEvent:
        return EliminationEvent(
            id=f"eliminated_{self.team_id}",
            league_id=self.league_id,
            team_id=self.team_id,
            owner_name=self.owner_name,
            week=self.week,
            score=self.score,
            rank=self.rank,
            margin=self.margin,
            drama_meter=self.drama_meter,
            narrative=self.narrative,
            cause=self.cause,
            created_at=self.created_at,
        )
