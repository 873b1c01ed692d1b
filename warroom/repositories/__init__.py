"""Data access layer for persisted engine state."""
from warroom.repositories.base import BaseRepository
from warroom.repositories.elimination_repository import EliminationRepository

__all__ = ["BaseRepository", "EliminationRepository"]
