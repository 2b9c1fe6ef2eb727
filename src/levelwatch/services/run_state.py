"""Last price sample and per-job run status.

Both are single rows written with last-write-wins upserts; the monitor keeps
no state in memory between invocations.
"""

import logging
from datetime import datetime

from levelwatch.config import settings
from levelwatch.db import get_session, upsert
from levelwatch.models.price_sample import PriceSample
from levelwatch.models.run_status import RunStatus
from levelwatch.schemas import PriceQuote

logger = logging.getLogger(__name__)


def load_last_sample(symbol: str, session=None) -> PriceSample | None:
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        return session.get(PriceSample, symbol.upper(), populate_existing=True)
    finally:
        if own_session:
            session.close()


def save_sample(quote: PriceQuote, session=None):
    """Overwrite the last known sample for the quote's symbol."""
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        values = {
            "symbol": quote.symbol.upper(),
            "price": quote.price,
            "observed_at": quote.observed_at,
            "source": quote.source,
        }
        stmt = upsert(session, PriceSample).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["symbol"],
            set_={
                "price": stmt.excluded.price,
                "observed_at": stmt.excluded.observed_at,
                "source": stmt.excluded.source,
            },
        )
        session.execute(stmt)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()


def get_run_status(job_name: str = None, session=None) -> RunStatus | None:
    job_name = job_name or settings.monitor_job_name
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        return session.get(RunStatus, job_name, populate_existing=True)
    finally:
        if own_session:
            session.close()


def _write_status(job_name: str, values: dict, session):
    stmt = upsert(session, RunStatus).values(job_name=job_name, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["job_name"],
        set_={key: getattr(stmt.excluded, key) for key in values},
    )
    session.execute(stmt)
    session.commit()


def record_run(price: float, at: datetime = None, job_name: str = None, session=None):
    """Mark a completed tick. Always the last write of a tick."""
    job_name = job_name or settings.monitor_job_name
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        _write_status(job_name, {"last_run_at": at or datetime.utcnow(), "last_price": price}, session)
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()


def record_failure(error: str, at: datetime = None, job_name: str = None, session=None):
    """Note an aborted tick without touching last_run_at, so staleness still shows."""
    job_name = job_name or settings.monitor_job_name
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        _write_status(job_name, {"last_error": error[:500], "last_error_at": at or datetime.utcnow()}, session)
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()


def set_enabled(enabled: bool, job_name: str = None, session=None):
    job_name = job_name or settings.monitor_job_name
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        _write_status(job_name, {"enabled": enabled}, session)
        logger.info(f"Job {job_name} {'enabled' if enabled else 'disabled'}")
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()


def is_enabled(job_name: str = None, session=None) -> bool:
    """Jobs with no status row yet are enabled."""
    status = get_run_status(job_name, session=session)
    return True if status is None else bool(status.enabled)


def get_meta(key: str, job_name: str = None, session=None):
    status = get_run_status(job_name, session=session)
    if status is None or not status.meta:
        return None
    return status.meta.get(key)


def set_meta(key: str, value, job_name: str = None, session=None):
    """Read-modify-write of one metadata key; last writer wins."""
    job_name = job_name or settings.monitor_job_name
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        status = session.get(RunStatus, job_name, populate_existing=True)
        meta = dict(status.meta or {}) if status else {}
        meta[key] = value
        _write_status(job_name, {"meta": meta}, session)
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()
