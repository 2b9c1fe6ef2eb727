"""Report ingestion: preview a parse, then publish it behind the warning gate."""

import logging
from datetime import date

from levelwatch.config import settings
from levelwatch.db import get_session, init_db
from levelwatch.errors import PublishRejectedError
from levelwatch.services.level_store import upsert_report, create_levels_for_report
from levelwatch.services.market_hours import market_now
from levelwatch.services.report_parser import parse_report, validate_extracted, PARSER_VERSION

logger = logging.getLogger(__name__)


def summarize(fields) -> dict:
    """Compact view of the extracted fields for operator review."""
    return {
        "close": fields.key_metrics.close,
        "change_pct": fields.key_metrics.change_pct,
        "mode": fields.regime.mode.value,
        "entry_quality": fields.entry_quality.score,
        "stance": fields.position_guidance.stance,
        "daily_cap_pct": fields.position_guidance.daily_cap_pct,
        "master_eject": fields.master_eject,
        "alert_levels": [
            {
                "level_name": lvl.level_name,
                "price": lvl.price,
                "direction": lvl.direction.value,
                "action": lvl.action,
            }
            for lvl in fields.alert_levels
        ],
        "scenarios": len(fields.scenarios),
        "performance_review": (
            f"{fields.performance_review.correct}/{fields.performance_review.total}"
            if fields.performance_review else None
        ),
    }


def preview_report(raw_text: str) -> dict:
    """Parse without persisting. success is False when the report is unfit to monitor."""
    result = parse_report(raw_text)
    problems = validate_extracted(result.fields)
    return {
        "success": not problems,
        "warnings": result.warnings,
        "problems": problems,
        "summary": summarize(result.fields),
    }


def publish_report(
    raw_text: str,
    report_date: date = None,
    symbol: str = None,
    force: bool = False,
    announce: bool = False,
    dispatcher=None,
    session=None,
) -> dict:
    """Persist the report and spawn its alert levels in one transaction.

    Raises PublishRejectedError when the parse produced more warnings than
    max_publish_warnings, or when validate_extracted finds the report unfit
    to monitor, unless force is set.
    """
    symbol = (symbol or settings.symbol).upper()
    report_date = report_date or market_now().date()
    threshold = settings.max_publish_warnings

    result = parse_report(raw_text)
    fields, warnings = result.fields, result.warnings
    problems = validate_extracted(fields)
    over_threshold = len(warnings) > threshold

    if (over_threshold or problems) and not force:
        for problem in problems:
            logger.warning(f"{symbol} report {report_date}: {problem}")
        logger.warning(
            f"Rejected {symbol} report for {report_date}: {len(warnings)} warnings "
            f"(threshold {threshold}), {len(problems)} problems"
        )
        raise PublishRejectedError(warnings, threshold, problems)
    if over_threshold or problems:
        logger.warning(
            f"Force-publishing {symbol} report for {report_date} with {len(warnings)} warnings "
            f"and problems {problems}"
        )

    own_session = session is None
    if own_session:
        init_db()
        session = get_session()
    try:
        report = upsert_report(
            report_date, raw_text, fields, warnings, PARSER_VERSION, symbol=symbol, session=session,
        )
        levels = create_levels_for_report(report.id, fields.alert_levels, session=session)
        session.commit()
        report_id = report.id
        level_count = len(levels)
    except Exception:
        session.rollback()
        raise
    finally:
        if own_session:
            session.close()

    logger.info(f"Published {symbol} report {report_date} (id {report_id}) with {level_count} levels")

    announced = []
    if announce:
        from levelwatch.services.alerts import format_report_announcement
        if dispatcher is None:
            from levelwatch.services.dispatcher import build_dispatcher
            dispatcher = build_dispatcher()
        announced = dispatcher.dispatch_notice(format_report_announcement(symbol, report_date, fields))

    return {
        "report_id": report_id,
        "symbol": symbol,
        "report_date": report_date,
        "levels": level_count,
        "warnings": warnings,
        "forced": force and (over_threshold or bool(problems)),
        "announced": {r.channel: r.success for r in announced},
    }
