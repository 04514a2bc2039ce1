from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
import logging
import pytz

from config import APP_TIMEZONE

logger = logging.getLogger(__name__)

# Local development only; production relies on an external cron calling /api/cron/*
scheduler = AsyncIOScheduler()


# ========= Scheduled Tasks =========

async def weekly_inventory_refresh(app):
    """Friday evening inventory invalidate-and-warm"""
    logger.info("Running scheduled task: weekly_inventory_refresh")
    report = await app.state.warmer.invalidate_and_warm_inventory(wait=True)
    logger.info(
        f"weekly_inventory_refresh finished | invalidated={report.invalidation.ok} | "
        f"removed={report.invalidation.removed} | warming={report.warming}"
    )


def sweep_activity_tracker(app):
    """Drop activity records whose throttle window has elapsed"""
    removed = app.state.activity_tracker.sweep()
    logger.info(f"sweep_activity_tracker removed={removed}")


def start_scheduler(app):
    """Initialize and start the scheduler"""
    timezone = pytz.timezone(APP_TIMEZONE)
    try:
        scheduler.add_job(
            weekly_inventory_refresh,
            CronTrigger(day_of_week="fri", hour=20, minute=0, timezone=timezone),
            args=[app],
            id="weekly_inventory_refresh",
            replace_existing=True,
        )
        scheduler.add_job(
            sweep_activity_tracker,
            IntervalTrigger(hours=1),
            args=[app],
            id="sweep_activity_tracker",
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Scheduler started successfully")
    except Exception as e:
        logger.error(f"Error starting scheduler: {str(e)}", exc_info=True)


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
