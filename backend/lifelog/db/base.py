"""Singleton declarative base.

The rest of the codebase can simply do

    from lifelog.db.base import Base

to declare new ORM models.  Keeping the base in one place ensures that
`Base.metadata.create_all(bind=engine)` sees every mapped class once
``lifelog.models`` has been imported.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

# The global declarative base instance used by every model
Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware current UTC time, used for column defaults."""
    return datetime.now(timezone.utc)


__all__ = ["Base", "utcnow"]
