"""
Models for the aggregation engine.

- unified: source-independent League/Team/Player/Matchup/Ranking entities
- dto: source-native payload schemas (Sleeper, ESPN)
- ledger: SQLAlchemy table for the elimination history
"""
from warroom.models.unified import (
    ATTRITION_NARRATIVE,
    EliminationEvent,
    EliminationStatus,
    League,
    LeagueSnapshot,
    LeagueSource,
    LineupConfig,
    Matchup,
    Player,
    Ranking,
    Team,
    TeamRanking,
)
from warroom.models.ledger import Base, EliminationEventRecord

__all__ = [
    "ATTRITION_NARRATIVE",
    "Base",
    "EliminationEvent",
    "EliminationEventRecord",
    "EliminationStatus",
    "League",
    "LeagueSnapshot",
    "LeagueSource",
    "LineupConfig",
    "Matchup",
    "Player",
    "Ranking",
    "Team",
    "TeamRanking",
]
