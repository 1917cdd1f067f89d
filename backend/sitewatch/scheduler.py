"""
Background Scheduler for Scan Passes
────────────────────────────────────
Uses APScheduler to run one "process due scans" pass every
SCAN_CHECK_INTERVAL seconds (60 by default).

Setup in the app factory (__init__.py):
    from sitewatch.scheduler import init_scheduler
    init_scheduler(app)

Only one pass runs at a time (max_instances=1): if a pass is still busy
when the next tick comes, that tick is skipped. The scheduler is stopped
when the interpreter exits.
"""
from __future__ import annotations

import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sitewatch.runner import build_runner

logger = logging.getLogger(__name__)

JOB_ID = "scan_pass"

_scheduler: BackgroundScheduler | None = None


def _process_due_scans(app) -> None:
    """One pass inside an app context. Never raises into APScheduler."""
    with app.app_context():
        try:
            ran = build_runner(app).process_due_scans()
        except Exception:
            logger.exception("Scheduled scan pass crashed")
            return
        if not ran:
            logger.warning("Scheduled scan pass did not run")


def init_scheduler(app) -> BackgroundScheduler | None:
    """Initialize and start the background scheduler."""
    global _scheduler

    if _scheduler is not None:
        logger.info("Scheduler already running")
        return _scheduler

    interval = app.config["SCAN_SETTINGS"].check_interval
    _scheduler = BackgroundScheduler(daemon=True)

    _scheduler.add_job(
        func=_process_due_scans,
        args=[app],
        trigger=IntervalTrigger(seconds=interval),
        id=JOB_ID,
        name="Process due scans",
        replace_existing=True,
        max_instances=1,
    )

    _scheduler.start()
    atexit.register(shutdown_scheduler)
    logger.info(f"Background scheduler started (checking every {interval}s)")
    return _scheduler


def shutdown_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")
