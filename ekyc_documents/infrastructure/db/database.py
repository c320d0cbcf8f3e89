"""
Database connection management.

Supports:
  - SQLite (local dev and tests, no setup)
  - PostgreSQL (Docker / managed)

The connection string comes from Settings.database_url.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ekyc_documents.infrastructure.db.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(url: str) -> Engine:
    """Create SQLAlchemy engine."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        echo=False,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables. Safe to call multiple times."""
    Base.metadata.create_all(engine)
    url = engine.url.render_as_string(hide_password=True)
    logger.info(f"Database initialized: {url.split('@')[-1]}")


@contextmanager
def session_scope(factory: sessionmaker) -> Session:
    """Context manager for database sessions."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
