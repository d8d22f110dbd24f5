"""
APScheduler Configuration

Runs the month-end billing job inside the API process.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from coldstore.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Never overlap two billing runs
    'misfire_grace_time': 3600,
}

scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_scheduled_billing():
    """Open a session and run month-end billing; called by APScheduler."""
    from coldstore.database import get_db_session
    from coldstore.jobs.billing_jobs import run_monthly_billing_job

    try:
        async with get_db_session() as db:
            result = await run_monthly_billing_job(db)
        logger.info(
            f"Month-end billing for {result['period_start']}: "
            f"{len(result['generated'])}/{result['accounts']} accounts invoiced"
        )
    except Exception as e:
        logger.error(f"Month-end billing job failed: {e}")


def start_scheduler():
    """Register the billing job and start the scheduler."""
    if not scheduler.running:
        scheduler.add_job(
            run_scheduled_billing,
            'cron',
            day=settings.BILLING_SCHEDULE_DAY,
            hour=settings.BILLING_SCHEDULE_HOUR,
            minute=0,
            id='monthly_billing',
            name='Month-End Billing',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
