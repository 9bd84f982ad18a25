"""
Maintenance scheduler

Run as its own process:
    python -m reconciler.worker.scheduler
"""
import logging
from datetime import timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reconciler.core.config import settings
from reconciler.core.logging_config import setup_logging
from reconciler.worker.tasks import refresh_expired_entitlements

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "refresh_expired_entitlements"


def build_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        refresh_expired_entitlements,
        IntervalTrigger(minutes=settings.ENTITLEMENT_REFRESH_INTERVAL_MINUTES),
        id=REFRESH_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def main() -> None:
    setup_logging()
    scheduler = build_scheduler()
    logger.info(
        "Scheduler started. Entitlement refresh runs every %d minutes.",
        settings.ENTITLEMENT_REFRESH_INTERVAL_MINUTES,
    )
    scheduler.start()


if __name__ == "__main__":  # pragma: no cover
    main()
