"""
Background scheduler for the booking lifecycle sweep (APScheduler).
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from models import db
from services.lifecycle import sweep_bookings

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "booking-lifecycle-sweep"


def run_sweep(app):
    with app.app_context():
        try:
            return sweep_bookings()
        finally:
            db.session.remove()


def init_scheduler(app):
    """
    Start the sweep in a daemon thread. Returns the scheduler, or None when
    SCHEDULER_ENABLED is off (tests, one-off CLI runs).
    """
    if not app.config.get("SCHEDULER_ENABLED", False):
        logger.info("Lifecycle scheduler disabled")
        return None

    minutes = app.config.get("LIFECYCLE_SWEEP_MINUTES", 5)
    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        run_sweep,
        trigger=IntervalTrigger(minutes=minutes),
        args=[app],
        id=SWEEP_JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    app.extensions["scheduler"] = scheduler
    logger.info("Lifecycle scheduler started (every %s min)", minutes)
    return scheduler


def shutdown_scheduler(app):
    scheduler = app.extensions.pop("scheduler", None)
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Lifecycle scheduler stopped")
