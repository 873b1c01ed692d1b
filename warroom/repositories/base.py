"""
Shared data-access helpers for ledger repositories.

Ledger tables only grow: a repository can read, check and stage new rows,
then commit or roll back the session it was handed. It never updates or
deletes.
"""
from abc import ABC
from typing import Generic, Type, TypeVar

from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Repository over one mapped class.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The session the caller owns (the repository never closes it)
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    def query(self) -> Query:
        return self.db.query(self.model_type)

    def exists_where(self, *criterion) -> bool:
        return self.db.query(self.query().filter(*criterion).exists()).scalar()

    def count(self, *criterion) -> int:
        """Row count, filtered by ``criterion`` when given."""
        rows = self.query()
        if criterion:
            rows = rows.filter(*criterion)
        return rows.count()

    def add(self, instance: T) -> T:
        """Stage a row; nothing is written until ``save``."""
        self.db.add(instance)
        return instance

    def save(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
