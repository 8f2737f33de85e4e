"""Database engine & session utilities.

The DB helper is deliberately minimal: sync engine + classic session maker.
"""

import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lifelog.config import settings
from lifelog.db.base import Base

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine & session factory
# ---------------------------------------------------------------------------

logger.info("Creating database engine for %s", settings.DATABASE_URL.split('@')[-1])

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, future=True, connect_args=_connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def create_tables() -> None:
    """Create all tables if they do not yet exist. Harmless when they do."""

    # Registers every mapped class on Base.metadata
    import lifelog.models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")
    except Exception as exc:
        logger.exception("Could not create DB tables: %s", exc)
        raise


def get_db():
    """Yields a database session and ensures it's closed after use."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        logger.debug("DB session closed")
