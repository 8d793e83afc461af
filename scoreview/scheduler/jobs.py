"""SCOREVIEW — Scheduler Jobs.

APScheduler interval job that recomputes every summary from its records
and repairs any drift.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from scoreview.config import settings
from scoreview.api.deps import get_service
from scoreview.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def reconcile_job():
    """Run a full reconciliation pass."""
    logger.info("Scheduled reconciliation starting...")
    try:
        report = get_service().reconcile()
        logger.info(
            f"Scheduled reconciliation complete. Corrected: {report.summaries_corrected}",
            extra={"duration_ms": report.duration_ms},
        )
    except Exception as e:
        logger.error(f"Scheduled reconciliation failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        reconcile_job,
        "interval",
        minutes=settings.reconcile_minutes,
        id="reconcile_summaries",
        replace_existing=True,
        misfire_grace_time=600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Reconciling every {settings.reconcile_minutes} min")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
