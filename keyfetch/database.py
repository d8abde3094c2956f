"""
Database engine and session management.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for database_url.

    In-memory SQLite databases share a single connection so every thread
    sees the same data.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory bound to engine."""
    return sessionmaker(bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker):
    """
    Context manager for a transactional database session.

    Usage:
        with session_scope(session_factory) as db:
            # Use db session
            pass
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Engine):
    """
    Initialize the database by creating all tables.
    """
    from keyfetch.db_models import Base

    # Create all tables
    Base.metadata.create_all(bind=engine)
