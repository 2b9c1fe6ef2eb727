"""One stateless monitor tick.

Everything a tick needs is loaded from the database at the start and written
back at the end. Overlapping ticks are safe because a level only notifies
when this tick's conditional ``mark_triggered`` write is the one that lands.

Steps:
1. Load the last price sample (absent on the very first run)
2. Fetch the current price; on failure record it and stop
3. Load pending levels of the latest report
4. Detect crossings against the [last, current] bracket
5. Mark crossed levels triggered; notify only the ones this tick won
6. Save the current price as the new last sample
7. Update run status (always the final write)
"""

import logging
from datetime import datetime

from levelwatch.config import settings
from levelwatch.db import get_session
from levelwatch.errors import PriceUnavailableError
from levelwatch.schemas import Direction, Mode, DEFAULT_MODE, TriggerEvent
from levelwatch.services.level_store import (
    MarkResult, get_latest_report, get_pending_levels, mark_triggered,
)
from levelwatch.services.run_state import (
    load_last_sample, save_sample, record_run, record_failure, is_enabled,
)

logger = logging.getLogger(__name__)


def detect_crossing(direction, level_price: float, last_price: float | None, current_price: float) -> tuple[bool, bool]:
    """Return (crossed, cold_start).

    Downside P crosses when last > P >= current, upside P when last < P <= current.
    With no last price the check degrades to a point-in-time comparison of the
    current price, flagged as a cold start.
    """
    direction = Direction(direction)
    if last_price is None:
        if direction == Direction.DOWNSIDE:
            return current_price <= level_price, True
        return current_price >= level_price, True

    if direction == Direction.DOWNSIDE:
        return last_price > level_price >= current_price, False
    return last_price < level_price <= current_price, False


def _report_context(report) -> dict:
    fields = (report.extracted_fields or {}) if report else {}
    regime = fields.get("regime") or {}
    try:
        mode = Mode(regime.get("mode"))
    except ValueError:
        mode = DEFAULT_MODE
    return {
        "mode": mode,
        "stance": (fields.get("position_guidance") or {}).get("stance", ""),
        "master_eject": fields.get("master_eject"),
    }


def run_tick(symbol: str = None, price_source=None, dispatcher=None, session=None, now: datetime = None) -> dict:
    """Run one monitor tick and return a summary dict."""
    symbol = (symbol or settings.symbol).upper()
    now = now or datetime.utcnow()
    if price_source is None:
        from levelwatch.services.price_source import build_price_source
        price_source = build_price_source()
    if dispatcher is None:
        from levelwatch.services.dispatcher import build_dispatcher
        dispatcher = build_dispatcher()

    summary = {
        "symbol": symbol,
        "status": "ok",
        "price": None,
        "previous_price": None,
        "source": None,
        "checked": 0,
        "triggered": [],
        "already_triggered": 0,
        "failed": 0,
        "error": None,
    }

    own_session = session is None
    if own_session:
        session = get_session()
    try:
        if not is_enabled(session=session):
            logger.info(f"Monitor disabled; skipping tick for {symbol}")
            summary["status"] = "disabled"
            return summary

        # Step 1
        last = load_last_sample(symbol, session=session)
        last_price = last.price if last else None
        summary["previous_price"] = last_price

        # Step 2
        try:
            quote = price_source.get_price(symbol)
        except PriceUnavailableError as e:
            logger.error(f"Tick aborted: {e}")
            record_failure(str(e), at=now, session=session)
            summary["status"] = "price_unavailable"
            summary["error"] = str(e)
            return summary
        summary["price"] = quote.price
        summary["source"] = quote.source

        # Step 3
        pending = get_pending_levels(symbol, session=session)
        # Plain values; commits below expire ORM instances
        levels = [
            (lvl.id, lvl.report_id, lvl.level_name, lvl.price, lvl.direction, lvl.action, lvl.reason)
            for lvl in pending
        ]
        summary["checked"] = len(levels)
        context = _report_context(get_latest_report(symbol, session=session)) if levels else {}

        # Steps 4 and 5
        events = []
        for level_id, report_id, name, price, direction, action, reason in levels:
            crossed, cold_start = detect_crossing(direction, price, last_price, quote.price)
            if not crossed:
                continue
            try:
                result = mark_triggered(level_id, at=now, session=session)
            except Exception as e:
                session.rollback()
                summary["failed"] += 1
                logger.error(f"Failed to mark level {level_id} ({name}) triggered: {e}", exc_info=True)
                continue

            if result == MarkResult.ALREADY_TRIGGERED:
                summary["already_triggered"] += 1
                continue

            if cold_start:
                logger.warning(
                    f"COLD-START trigger: {symbol} {name} ${price:.2f} ({direction}) "
                    f"at ${quote.price:.2f} with no prior sample"
                )
            else:
                logger.info(
                    f"Level crossed: {symbol} {name} ${price:.2f} ({direction}), "
                    f"${last_price:.2f} -> ${quote.price:.2f}"
                )

            events.append(TriggerEvent(
                alert_level_id=level_id,
                report_id=report_id,
                symbol=symbol,
                level_name=name,
                price=price,
                direction=Direction(direction),
                action=action or "",
                reason=reason or "",
                current_price=quote.price,
                previous_price=last_price,
                cold_start=cold_start,
                triggered_at=now,
                **context,
            ))

        try:
            batches = dispatcher.dispatch_all(events)
        except Exception as e:
            logger.error(f"Dispatch failed for levels {[ev.alert_level_id for ev in events]}: {e}", exc_info=True)
            batches = [[] for _ in events]
        for event, results in zip(events, batches):
            summary["triggered"].append({
                "level_id": event.alert_level_id,
                "level_name": event.level_name,
                "price": event.price,
                "direction": event.direction.value,
                "cold_start": event.cold_start,
                "channels": {r.channel: r.success for r in results},
            })

        # Step 6
        save_sample(quote, session=session)

        # Step 7
        record_run(quote.price, at=now, session=session)

        logger.info(
            f"Tick {symbol} ${quote.price:.2f} via {quote.source}: {len(levels)} pending, "
            f"{len(events)} triggered, {summary['already_triggered']} already triggered"
        )
        return summary
    finally:
        if own_session:
            session.close()
