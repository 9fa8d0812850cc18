"""Database models and session management.

Import models from their respective modules:
    from vecna.db.games import Game, GameFamily
    from vecna.db.taxonomy import Theme, TaxonomySuggestion

Session management:
    from vecna.db import get_session
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .base import Base

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

# Lazy-loaded engine and session factory so importing models never opens a connection.
_engine: "Engine | None" = None
_SessionLocal: sessionmaker[Session] | None = None


def _get_engine() -> "Engine":
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        from ..config import settings

        _engine = create_engine(
            settings.database_url,
            echo=settings.sql_echo,
            future=True,
            pool_pre_ping=True,
        )
    return _engine


def _get_session_factory() -> sessionmaker[Session]:
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=_get_engine(),
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            class_=Session,
        )
    return _SessionLocal


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Provide a transactional database session context manager.

    Commits on clean exit, rolls back and re-raises on error.

    Usage:
        with get_session() as session:
            game = session.get(Game, game_id)
    """
    from ..logging import logger

    session = _get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.exception("db_session_rollback", error=str(exc))
        raise
    finally:
        session.close()


__all__ = ["Base", "get_session"]
