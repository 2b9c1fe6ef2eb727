"""Tests for report/level persistence and trigger-once semantics."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime

from levelwatch.schemas import AlertLevelSpec, Direction
from levelwatch.services.level_store import (
    MarkResult, create_levels_for_report, get_pending_levels, mark_triggered,
    get_levels_for_report, count_pending, get_recent_triggers,
)
from levelwatch.services.publisher import publish_report


def _publish(text, day):
    return publish_report(text, report_date=day, force=True)


def test_publish_spawns_pending_levels(test_db, sample_report):
    result = _publish(sample_report, date(2026, 10, 14))
    pending = get_pending_levels("TSLA")
    assert result["levels"] == 4
    assert len(pending) == 4
    assert all(lvl.triggered_at is None for lvl in pending)


def test_mark_triggered_once(test_db, sample_report):
    _publish(sample_report, date(2026, 10, 14))
    level_id = get_pending_levels("TSLA")[0].id

    assert mark_triggered(level_id) == MarkResult.TRIGGERED
    assert mark_triggered(level_id) == MarkResult.ALREADY_TRIGGERED
    assert count_pending("TSLA") == 3


def test_mark_triggered_concurrent(test_db, sample_report):
    _publish(sample_report, date(2026, 10, 14))
    level_id = get_pending_levels("TSLA")[0].id

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: mark_triggered(level_id), range(8)))

    assert results.count(MarkResult.TRIGGERED) == 1
    assert results.count(MarkResult.ALREADY_TRIGGERED) == 7


def test_triggered_at_is_not_overwritten(test_db, sample_report):
    report_id = _publish(sample_report, date(2026, 10, 14))["report_id"]
    level_id = get_pending_levels("TSLA")[0].id
    first = datetime(2026, 10, 14, 15, 0)

    mark_triggered(level_id, at=first)
    mark_triggered(level_id, at=datetime(2026, 10, 14, 15, 5))

    level = next(lvl for lvl in get_levels_for_report(report_id) if lvl.id == level_id)
    assert level.triggered_at == first


def test_pending_only_from_latest_report(test_db, sample_report):
    _publish(sample_report, date(2026, 10, 13))
    newer = sample_report.replace("$420.00", "$425.00")
    latest = _publish(newer, date(2026, 10, 14))

    pending = get_pending_levels("TSLA")
    assert {lvl.report_id for lvl in pending} == {latest["report_id"]}
    assert 425.0 in [lvl.price for lvl in pending]


def test_pending_scoped_to_symbol(test_db, sample_report):
    _publish(sample_report, date(2026, 10, 14))
    assert get_pending_levels("NVDA") == []


def test_republish_replaces_levels_idempotently(test_db, sample_report):
    day = date(2026, 10, 14)
    first = _publish(sample_report, day)
    second = _publish(sample_report, day)

    assert first["report_id"] == second["report_id"]
    assert len(get_levels_for_report(first["report_id"])) == 4


def test_republish_keeps_triggered_levels(test_db, sample_report):
    day = date(2026, 10, 14)
    report_id = _publish(sample_report, day)["report_id"]
    eject = next(lvl for lvl in get_pending_levels("TSLA") if lvl.level_name == "Master Eject")
    mark_triggered(eject.id)

    _publish(sample_report, day)

    levels = get_levels_for_report(report_id)
    kept = next(lvl for lvl in levels if lvl.level_name == "Master Eject")
    assert kept.id == eject.id
    assert kept.triggered_at is not None
    assert count_pending("TSLA") == 3


def test_create_levels_directly(test_db, sample_report):
    report_id = _publish(sample_report, date(2026, 10, 14))["report_id"]
    specs = [
        AlertLevelSpec(level_name="Ceiling", price=500, direction=Direction.UPSIDE, action="Trim"),
        AlertLevelSpec(level_name="Floor", price=300, direction=Direction.DOWNSIDE, action="Exit"),
    ]
    levels = create_levels_for_report(report_id, specs)
    assert [lvl.level_name for lvl in levels] == ["Ceiling", "Floor"]
    assert count_pending("TSLA") == 2


def test_recent_triggers_window(test_db, sample_report):
    _publish(sample_report, date(2026, 10, 14))
    ids = [lvl.id for lvl in get_pending_levels("TSLA")]
    now = datetime(2026, 10, 15, 12, 0)
    mark_triggered(ids[0], at=datetime(2026, 10, 15, 11, 0))
    mark_triggered(ids[1], at=datetime(2026, 10, 13, 11, 0))

    recent = get_recent_triggers(hours=24, now=now)
    assert [lvl.id for lvl in recent] == [ids[0]]
