"""
Database connection and initialization utilities.
"""

import logging
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from taskdesk.config import load_settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections may be used from worker threads."""
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
        echo=echo,  # Set DB_ECHO=true for SQL logging
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


_settings = load_settings()

engine = build_engine(_settings.database_url, _settings.db_echo)

# Create session factory
SessionLocal = build_session_factory(engine)


def init_db(bind: Engine | None = None):
    """Initialize database - create all tables."""
    from taskdesk.db.models import Base
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Database initialized at: {target.url}")


def get_session() -> Session:
    """Get a new database session."""
    return SessionLocal()
