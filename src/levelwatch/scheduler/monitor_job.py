"""Price monitor scheduler.

Ticks once a minute during market hours and every offhours_interval_minutes
otherwise. Each tick is an independent invocation with its own database
session; the loop itself holds no monitoring state.
"""

import logging
import time
from datetime import datetime

import schedule

from levelwatch.config import settings, validate_monitor_config
from levelwatch.db import init_db
from levelwatch.services.market_hours import is_market_open
from levelwatch.services.price_monitor import run_tick

logger = logging.getLogger(__name__)

_last_offhours_tick: datetime | None = None


def setup_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(settings.data_dir / "monitor.log"),
        ],
        force=True,
    )


def monitor_job():
    """One scheduled tick. Errors are logged and the next tick retries."""
    global _last_offhours_tick

    now = datetime.utcnow()
    if not is_market_open(now):
        if (
            _last_offhours_tick is not None
            and (now - _last_offhours_tick).total_seconds() < settings.offhours_interval_minutes * 60
        ):
            return
        _last_offhours_tick = now

    try:
        summary = run_tick(now=now)
        if summary["triggered"]:
            logger.warning(f"{len(summary['triggered'])} level(s) triggered at ${summary['price']:.2f}")
    except Exception as e:
        logger.error(f"Monitor tick failed: {e}", exc_info=True)


def start_scheduler(run_now: bool = False):
    """Validate config, then tick on schedule until interrupted."""
    setup_logging()
    validate_monitor_config()
    init_db()

    logger.info(
        f"Monitor started for {settings.symbol}: every {settings.tick_interval_minutes} min "
        f"during market hours, every {settings.offhours_interval_minutes} min otherwise. "
        f"Providers: {', '.join(settings.price_providers)}"
    )

    schedule.every(settings.tick_interval_minutes).minutes.do(monitor_job)

    import sys
    if run_now or "--now" in sys.argv:
        logger.info("Running immediately (--now flag)")
        monitor_job()

    while True:
        schedule.run_pending()
        time.sleep(1)


if __name__ == "__main__":
    start_scheduler()
