"""Persistence for reports and their alert levels.

The store owns the trigger-once guarantee: ``mark_triggered`` is a
conditional single-row UPDATE, so any number of overlapping monitor ticks
can race on the same level and exactly one of them wins.
"""

import enum
import logging
from datetime import date, datetime, timedelta

from sqlalchemy import select, update, func

from levelwatch.config import settings
from levelwatch.db import get_session, init_db
from levelwatch.models.alert_level import AlertLevel
from levelwatch.models.report import Report
from levelwatch.schemas import AlertLevelSpec, ExtractedFields

logger = logging.getLogger(__name__)


class MarkResult(str, enum.Enum):
    TRIGGERED = "triggered"
    ALREADY_TRIGGERED = "already_triggered"


def _level_key(level_name: str, price: float, direction: str) -> tuple:
    return (level_name.strip().lower(), round(float(price), 4), str(direction))


def upsert_report(
    report_date: date,
    raw_text: str,
    fields: ExtractedFields,
    warnings: list[str],
    parser_version: str,
    session,
    symbol: str = None,
) -> Report:
    """Insert or overwrite the report for (symbol, date). Flushes but does not commit."""
    symbol = (symbol or settings.symbol).upper()
    report = session.execute(
        select(Report).where(Report.symbol == symbol, Report.report_date == report_date)
    ).scalar_one_or_none()

    now = datetime.utcnow()
    payload = fields.model_dump(mode="json")
    if report is None:
        report = Report(
            symbol=symbol,
            report_date=report_date,
            raw_text=raw_text,
            extracted_fields=payload,
            parse_warnings=list(warnings),
            parser_version=parser_version,
            created_at=now,
            updated_at=now,
        )
        session.add(report)
    else:
        report.raw_text = raw_text
        report.extracted_fields = payload
        report.parse_warnings = list(warnings)
        report.parser_version = parser_version
        report.updated_at = now
    session.flush()
    return report


def create_levels_for_report(report_id: int, specs: list[AlertLevelSpec], session=None) -> list[AlertLevel]:
    """Replace the level set of a report.

    Idempotent on report_id. Pending levels are replaced. Levels that already
    triggered are history and are kept as they are; re-publishing an identical
    level reuses the triggered row, so a re-upload never re-arms a fired alert.
    """
    own_session = session is None
    if own_session:
        init_db()
        session = get_session()
    try:
        existing = session.execute(
            select(AlertLevel).where(AlertLevel.report_id == report_id)
        ).scalars().all()
        fired = {}
        for lvl in existing:
            if lvl.triggered_at is None:
                session.delete(lvl)
            else:
                fired[_level_key(lvl.level_name, lvl.price, lvl.direction)] = lvl
        session.flush()

        now = datetime.utcnow()
        levels = []
        for spec in specs:
            direction = spec.direction.value
            kept = fired.get(_level_key(spec.level_name, spec.price, direction))
            if kept is not None:
                levels.append(kept)
                continue
            lvl = AlertLevel(
                report_id=report_id,
                level_name=spec.level_name,
                price=spec.price,
                direction=direction,
                action=spec.action,
                reason=spec.reason,
                created_at=now,
            )
            session.add(lvl)
            levels.append(lvl)

        if own_session:
            session.commit()
            for lvl in levels:
                session.refresh(lvl)
        else:
            session.flush()

        carried = sum(1 for lvl in levels if lvl.triggered_at is not None)
        logger.info(f"Report {report_id}: stored {len(levels)} alert levels ({carried} already triggered)")
        return levels
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()


def get_latest_report(symbol: str = None, session=None) -> Report | None:
    """Most recent report for the symbol; only its levels are monitored."""
    symbol = (symbol or settings.symbol).upper()
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        return session.execute(
            select(Report)
            .where(Report.symbol == symbol)
            .order_by(Report.report_date.desc(), Report.id.desc())
            .limit(1)
        ).scalar_one_or_none()
    finally:
        if own_session:
            session.close()


def get_pending_levels(symbol: str = None, session=None) -> list[AlertLevel]:
    """Untriggered levels belonging to the latest report only."""
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        report = get_latest_report(symbol, session=session)
        if report is None:
            return []
        return list(session.execute(
            select(AlertLevel)
            .where(AlertLevel.report_id == report.id, AlertLevel.triggered_at.is_(None))
            .order_by(AlertLevel.id)
        ).scalars().all())
    finally:
        if own_session:
            session.close()


def mark_triggered(level_id: int, at: datetime = None, session=None) -> MarkResult:
    """Set triggered_at iff it is still null. Commits immediately."""
    at = at or datetime.utcnow()
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        result = session.execute(
            update(AlertLevel)
            .where(AlertLevel.id == level_id, AlertLevel.triggered_at.is_(None))
            .values(triggered_at=at)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if result.rowcount == 1:
            return MarkResult.TRIGGERED
        logger.debug(f"Level {level_id} already triggered by another run")
        return MarkResult.ALREADY_TRIGGERED
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()


def count_pending(symbol: str = None, session=None) -> int:
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        report = get_latest_report(symbol, session=session)
        if report is None:
            return 0
        return session.execute(
            select(func.count(AlertLevel.id))
            .where(AlertLevel.report_id == report.id, AlertLevel.triggered_at.is_(None))
        ).scalar_one()
    finally:
        if own_session:
            session.close()


def get_recent_triggers(hours: int = 24, limit: int = 10, now: datetime = None, session=None) -> list[AlertLevel]:
    now = now or datetime.utcnow()
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        return list(session.execute(
            select(AlertLevel)
            .where(AlertLevel.triggered_at.is_not(None), AlertLevel.triggered_at >= now - timedelta(hours=hours))
            .order_by(AlertLevel.triggered_at.desc())
            .limit(limit)
        ).scalars().all())
    finally:
        if own_session:
            session.close()


def count_recent_triggers(hours: int = 24, now: datetime = None, session=None) -> int:
    now = now or datetime.utcnow()
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        return session.execute(
            select(func.count(AlertLevel.id))
            .where(AlertLevel.triggered_at.is_not(None), AlertLevel.triggered_at >= now - timedelta(hours=hours))
        ).scalar_one()
    finally:
        if own_session:
            session.close()


def get_levels_for_report(report_id: int, session=None) -> list[AlertLevel]:
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        return list(session.execute(
            select(AlertLevel).where(AlertLevel.report_id == report_id).order_by(AlertLevel.id)
        ).scalars().all())
    finally:
        if own_session:
            session.close()
