"""Engine and session factory for the subscriber sync database.

One database holds the source subscriber tables the sync reads and the
sync reports and action items it writes.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.core.config import settings


def _connect_args(url: str) -> dict:
    # Background sync jobs use the session from a worker thread
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.database_url),
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base for the source tables, sync reports and action items."""


def get_db():
    """Yield a session for one API request, closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
