from __future__ import annotations

from typing import Optional

import structlog
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from pytz import timezone

from dmarc_store.config import Settings, get_settings
from dmarc_store.observability.logging import configure_logging
from dmarc_store.scheduler.jobs import run_report_log_cleaner, run_reports_cleaner

logger = structlog.get_logger(__name__)


def build_scheduler(settings: Optional[Settings] = None) -> BackgroundScheduler:
    settings = settings or get_settings()
    if settings.SCHEDULER_DB_URL:
        jobstore = SQLAlchemyJobStore(url=settings.SCHEDULER_DB_URL)
    else:
        jobstore = MemoryJobStore()
    return BackgroundScheduler(
        jobstores={"default": jobstore},
        timezone=timezone(settings.SCHEDULER_TZ),
    )


def configure_jobs(scheduler: BackgroundScheduler, settings: Optional[Settings] = None) -> None:
    """
    Register the retention jobs with the scheduler.

    - reports-cleaner: nightly removal of old reports
    - reportlog-cleaner: nightly removal of old report log entries
    """
    settings = settings or get_settings()
    scheduler.add_job(
        run_reports_cleaner,
        "cron",
        id="reports-cleaner",
        hour=settings.REPORTS_CLEANER_HOUR,
        minute=0,
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )
    scheduler.add_job(
        run_report_log_cleaner,
        "cron",
        id="reportlog-cleaner",
        hour=settings.REPORTLOG_CLEANER_HOUR,
        minute=0,
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )


def start_scheduler(settings: Optional[Settings] = None) -> Optional[BackgroundScheduler]:
    """Start the retention scheduler if SCHEDULER_ENABLED is true."""
    settings = settings or get_settings()
    if not settings.SCHEDULER_ENABLED:
        return None
    configure_logging(settings.LOG_LEVEL)
    scheduler = build_scheduler(settings)
    configure_jobs(scheduler, settings)
    scheduler.start()
    logger.info("scheduler.started", jobs=[job.id for job in scheduler.get_jobs()])
    return scheduler


def shutdown_scheduler(scheduler: Optional[BackgroundScheduler]) -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
