"""
Database configuration and session management for the elimination ledger.
"""
import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the ledger database.

    SQLite URLs get check_same_thread disabled because the FastAPI threadpool
    and the event loop may both touch the session.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,  # Verify connections before using
        echo=os.getenv("SQL_ECHO", "false").lower() == "true"
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    from warroom.models.ledger import Base
    # checkfirst=True will only create tables that don't exist
    Base.metadata.create_all(bind=engine, checkfirst=True)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a session and close it afterwards.

    Usage:
    ```python
    with session_scope(session_factory) as db:
        EliminationRepository(db).append(league_id, events)
    ```
    """
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
