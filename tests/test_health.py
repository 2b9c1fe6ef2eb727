"""Tests for health classification and market hours."""

from datetime import date, datetime, timedelta

from levelwatch.services.health import get_health, classify, CRITICAL, WARNING, HEALTHY
from levelwatch.services.market_hours import is_market_open
from levelwatch.services.publisher import publish_report
from levelwatch.services.run_state import record_run, set_enabled

# Wednesday 11:00 New York time
MARKET_NOW = datetime(2026, 10, 14, 15, 0)
# Saturday
WEEKEND_NOW = datetime(2026, 10, 17, 15, 0)


def test_market_hours():
    assert is_market_open(MARKET_NOW)
    assert not is_market_open(WEEKEND_NOW)
    assert not is_market_open(datetime(2026, 10, 14, 13, 29))  # 09:29 ET
    assert is_market_open(datetime(2026, 10, 14, 13, 30))  # 09:30 ET
    assert not is_market_open(datetime(2026, 10, 14, 20, 0))  # 16:00 ET


def test_classify_precedence():
    assert classify(False, 0, True, 4)[0] == CRITICAL
    assert classify(True, 6, True, 4)[0] == CRITICAL
    assert classify(True, 3, True, 4)[0] == WARNING
    assert classify(True, 1, True, 4)[0] == HEALTHY
    assert classify(True, 1, True, 0)[0] == WARNING


def test_staleness_ignored_outside_market_hours():
    status, _ = classify(True, 600, False, 4)
    assert status == HEALTHY


def test_health_critical_when_stale(test_db, sample_report):
    publish_report(sample_report, report_date=date(2026, 10, 14))
    record_run(395.0, at=MARKET_NOW - timedelta(minutes=10))

    h = get_health(now=MARKET_NOW)
    assert h["health"]["status"] == CRITICAL
    assert h["health"]["is_market_hours"] is True
    assert h["price_monitor"]["stale_minutes"] == 10
    assert h["alerts"]["pending"] == 4


def test_health_warning_when_delayed(test_db, sample_report):
    publish_report(sample_report, report_date=date(2026, 10, 14))
    record_run(395.0, at=MARKET_NOW - timedelta(minutes=3))
    assert get_health(now=MARKET_NOW)["health"]["status"] == WARNING


def test_health_healthy_on_weekend(test_db, sample_report):
    publish_report(sample_report, report_date=date(2026, 10, 16))
    record_run(395.0, at=WEEKEND_NOW - timedelta(hours=40))

    h = get_health(now=WEEKEND_NOW)
    assert h["health"]["status"] == HEALTHY
    assert h["alerts"]["pending_levels"][0]["price"] == 420.0


def test_health_critical_when_disabled(test_db, sample_report):
    publish_report(sample_report, report_date=date(2026, 10, 14))
    record_run(395.0, at=MARKET_NOW)
    set_enabled(False)

    h = get_health(now=MARKET_NOW)
    assert h["health"]["status"] == CRITICAL
    assert h["price_monitor"]["enabled"] is False


def test_health_warns_without_pending_levels(test_db):
    record_run(395.0, at=MARKET_NOW)
    h = get_health(now=MARKET_NOW)
    assert h["health"]["status"] == WARNING
    assert "No pending alerts" in h["health"]["message"]
