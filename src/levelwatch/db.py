"""SQLAlchemy engine and session management."""

from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from levelwatch.config import settings

engine = create_engine(settings.db_url, echo=False)
SessionLocal = sessionmaker(bind=engine)


class Base(DeclarativeBase):
    pass


def get_session() -> Session:
    return SessionLocal()


def init_db(bind=None):
    """Create all tables."""
    from levelwatch.models import report, alert_level, price_sample, notification_log, run_status  # noqa: F401
    Base.metadata.create_all(bind or engine)


def upsert(session: Session, model):
    """Dialect-specific INSERT supporting on_conflict_do_update."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)
