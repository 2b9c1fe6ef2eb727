"""Operator health view derived from run status, staleness and market hours."""

import logging
from datetime import datetime

from sqlalchemy import select

from levelwatch.config import settings
from levelwatch.db import get_session
from levelwatch.models.alert_level import AlertLevel
from levelwatch.services.level_store import (
    get_latest_report, count_pending, get_recent_triggers, count_recent_triggers,
)
from levelwatch.services.market_hours import is_market_open
from levelwatch.services.run_state import get_run_status

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"


def classify(enabled: bool, stale_minutes: int | None, market_open: bool, pending: int) -> tuple[str, str]:
    """Return (status, message). Staleness only counts during market hours."""
    if not enabled:
        return CRITICAL, "Alert system is DISABLED"
    if market_open and stale_minutes is not None and stale_minutes > settings.stale_critical_minutes:
        return CRITICAL, f"Price checks are STALE - last run {stale_minutes} minutes ago"
    if market_open and stale_minutes is not None and stale_minutes > settings.stale_warning_minutes:
        return WARNING, f"Price checks may be delayed - last run {stale_minutes} minutes ago"
    if market_open and stale_minutes is None:
        return WARNING, "Price monitor has not run yet"
    if pending == 0:
        return WARNING, "No pending alerts - verify report was uploaded"
    return HEALTHY, "Alert system operating normally"


def get_health(symbol: str = None, now: datetime = None, session=None) -> dict:
    symbol = (symbol or settings.symbol).upper()
    now = now or datetime.utcnow()
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        status = get_run_status(session=session)
        enabled = True if status is None else bool(status.enabled)
        last_run = status.last_run_at if status else None
        stale_minutes = round((now - last_run).total_seconds() / 60) if last_run else None
        market_open = is_market_open(now)

        pending_count = count_pending(symbol, session=session)
        report = get_latest_report(symbol, session=session)
        pending_levels = []
        if report is not None:
            pending_levels = session.execute(
                select(AlertLevel)
                .where(AlertLevel.report_id == report.id, AlertLevel.triggered_at.is_(None))
                .order_by(AlertLevel.price.desc())
                .limit(20)
            ).scalars().all()
        recent = get_recent_triggers(hours=24, limit=10, now=now, session=session)

        health_status, message = classify(enabled, stale_minutes, market_open, pending_count)
        if health_status != HEALTHY:
            logger.debug(f"Health {health_status}: {message}")

        return {
            "health": {
                "status": health_status,
                "message": message,
                "is_market_hours": market_open,
                "timestamp": now.isoformat(),
            },
            "price_monitor": {
                "enabled": enabled,
                "last_run": last_run.isoformat() if last_run else None,
                "last_price": status.last_price if status else None,
                "stale_minutes": stale_minutes,
                "last_error": status.last_error if status else None,
                "last_error_at": status.last_error_at.isoformat() if status and status.last_error_at else None,
            },
            "alerts": {
                "report_date": report.report_date.isoformat() if report else None,
                "pending": pending_count,
                "pending_levels": [
                    {"price": lvl.price, "level": lvl.level_name, "direction": lvl.direction}
                    for lvl in pending_levels
                ],
                "triggered_last_24h": count_recent_triggers(hours=24, now=now, session=session),
                "recent_triggers": [
                    {
                        "price": lvl.price,
                        "level": lvl.level_name,
                        "direction": lvl.direction,
                        "triggered_at": lvl.triggered_at.isoformat(),
                    }
                    for lvl in recent
                ],
            },
        }
    finally:
        if own_session:
            session.close()
