"""
APScheduler configuration for the monthly closing.

One cron job fires early on the first day of each month and closes the month
that just ended for all active organizations, with dates taken in
SCHEDULER_TIMEZONE. The closing itself isolates per-organization failures;
this wrapper only logs the outcome so a failed run never kills the scheduler.
"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from brokerage.core.logging import bind_context
from brokerage.core.settings import AppSettings, get_app_settings
from brokerage.db.session import get_session_factory
from brokerage.domain.billing import previous_period
from brokerage.services.closing import MonthlyClosingScheduler

logger = logging.getLogger(__name__)

CLOSING_JOB_ID = "monthly_closing"

_scheduler: Optional[AsyncIOScheduler] = None


def build_scheduler(settings: AppSettings) -> AsyncIOScheduler:
    """Scheduler with the monthly closing job registered (not started)."""
    scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Never two closings at once
            "misfire_grace_time": 3600,
        },
        timezone=settings.SCHEDULER_TIMEZONE,
    )
    scheduler.add_job(
        run_monthly_closing,
        CronTrigger(
            day=settings.CLOSING_CRON_DAY,
            hour=settings.CLOSING_CRON_HOUR,
            minute=settings.CLOSING_CRON_MINUTE,
            timezone=settings.SCHEDULER_TIMEZONE,
        ),
        id=CLOSING_JOB_ID,
        name="Monthly royalty closing",
        replace_existing=True,
    )
    return scheduler


async def run_monthly_closing(settings: Optional[AppSettings] = None, now: Optional[datetime] = None) -> None:
    """Job entry point: close the month before the current one in SCHEDULER_TIMEZONE."""
    settings = settings or get_app_settings()
    local_now = (now or datetime.now(ZoneInfo(settings.SCHEDULER_TIMEZONE))).astimezone(
        ZoneInfo(settings.SCHEDULER_TIMEZONE)
    )
    as_of = local_now.date()
    period = previous_period(as_of)
    with bind_context(correlation_id=f"job:{CLOSING_JOB_ID}"):
        try:
            report = await MonthlyClosingScheduler(get_session_factory(), settings).run_close(period, as_of=as_of)
        except Exception:
            logger.exception("Scheduled monthly closing %s failed", period)
            return
        if report.failures:
            logger.error("Scheduled closing %s finished with failures: %s", report.period, report.message)
        else:
            logger.info("Scheduled closing finished: %s", report.message)


def start_scheduler(settings: Optional[AppSettings] = None) -> Optional[AsyncIOScheduler]:
    """Start the scheduler when CLOSING_SCHEDULE_ENABLED; returns it or None."""
    global _scheduler
    settings = settings or get_app_settings()
    if not settings.CLOSING_SCHEDULE_ENABLED:
        logger.info("Monthly closing schedule disabled")
        return None
    if _scheduler is None or not _scheduler.running:
        _scheduler = build_scheduler(settings)
        _scheduler.start()
        for job in _scheduler.get_jobs():
            logger.info("Scheduled job: %s - next run: %s", job.name, job.next_run_time)
    return _scheduler


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")
    _scheduler = None


def get_job_status() -> list:
    """Status of scheduled jobs (empty when the schedule is disabled)."""
    if _scheduler is None:
        return []
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": str(job.next_run_time) if job.next_run_time else None,
            "trigger": str(job.trigger),
        }
        for job in _scheduler.get_jobs()
    ]
