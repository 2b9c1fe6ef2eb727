"""Regular trading session check in the exchange's local time."""

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

from levelwatch.config import settings


def _parse_hhmm(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def market_now(now: datetime = None) -> datetime:
    """Convert a naive-UTC or aware datetime to exchange local time."""
    now = now or datetime.utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(settings.market_timezone))


def is_market_open(now: datetime = None) -> bool:
    """Mon-Fri between market_open (inclusive) and market_close (exclusive).

    Exchange holidays are not modelled.
    """
    local = market_now(now)
    if local.weekday() >= 5:
        return False
    return _parse_hhmm(settings.market_open) <= local.time() < _parse_hhmm(settings.market_close)
