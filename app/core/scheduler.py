import logging
import os
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.services.notification_automation import NotificationAutomation

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def cleanup_old_notifications(automation: NotificationAutomation):
    try:
        result = await run_in_threadpool(
            automation.cleanup_old_notifications,
            settings.NOTIFICATION_RETENTION_DAYS,
            settings.NOTIFICATION_CLEANUP_STATUS,
        )
        if not result.success:
            logger.error(f"Scheduled notification cleanup failed: {result.error}")
    except Exception as e:
        logger.error(f"Error running scheduled notification cleanup: {e}")


def start_scheduler(automation: NotificationAutomation):
    if os.getenv("TESTING") == "true":
        logger.info("Scheduler disabled in test environment")
        return

    if not settings.NOTIFICATION_CLEANUP_SCHEDULE_ENABLED:
        logger.info("Scheduled notification cleanup disabled")
        return

    if not scheduler.running:
        scheduler.add_job(
            cleanup_old_notifications,
            'cron',
            args=[automation],
            hour=settings.NOTIFICATION_CLEANUP_HOUR,
            minute=0,
            id='notification_cleanup',
            name='Clean Up Old Notifications',
            replace_existing=True
        )
        scheduler.start()
        logger.info("Scheduler started with daily notification cleanup job")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
