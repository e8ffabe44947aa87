from __future__ import annotations

from datetime import timedelta
from typing import Optional

import structlog

from dmarc_store.config import Settings, get_settings
from dmarc_store.db.unit_of_work import UnitOfWork
from dmarc_store.observability.instrument import log_job
from dmarc_store.observability.logging import bind_operation, clear_operation
from dmarc_store.schemas.common import PageSpec, SortSpec
from dmarc_store.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@log_job("reports-cleaner")
def clean_reports(uow: UnitOfWork, days_old: int, delete_maximum: int, leave_minimum: int) -> int:
    """
    Remove reports older than ``days_old`` days.

    Nothing is removed while the store holds no more than ``leave_minimum``
    reports. When ``leave_minimum`` and ``delete_maximum`` are both set, a run
    removes at most ``delete_maximum`` reports, oldest first, and never cuts
    below ``leave_minimum``. Otherwise every report past the age limit goes.
    """
    reports = uow.reports
    excess = reports.count() - leave_minimum
    if excess <= 0:
        logger.info("retention.reports_skipped", leave_minimum=leave_minimum)
        return 0

    filter_map = {"before_time": utcnow() - timedelta(days=days_old)}
    sort = page = None
    if leave_minimum and delete_maximum:
        sort = SortSpec(field="begin_time", direction="ascent")
        page = PageSpec(offset=0, count=min(excess, delete_maximum))
    return reports.delete(filter_map, sort, page)


@log_job("reportlog-cleaner")
def clean_report_log(uow: UnitOfWork, days_old: int) -> int:
    """Remove report log entries older than ``days_old`` days."""
    return uow.report_log.delete({"till_time": utcnow() - timedelta(days=days_old)})


# ---------------------------------------------------------------------------
# Scheduler entry points; each run gets its own unit of work
# ---------------------------------------------------------------------------

def run_reports_cleaner(settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    bind_operation(job="reports-cleaner")
    try:
        with UnitOfWork(settings=settings) as uow:
            return clean_reports(
                uow,
                settings.REPORTS_CLEANER_DAYS_OLD,
                settings.REPORTS_CLEANER_DELETE_MAXIMUM,
                settings.REPORTS_CLEANER_LEAVE_MINIMUM,
            )
    finally:
        clear_operation()


def run_report_log_cleaner(settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    bind_operation(job="reportlog-cleaner")
    try:
        with UnitOfWork(settings=settings) as uow:
            return clean_report_log(uow, settings.REPORTLOG_CLEANER_DAYS_OLD)
    finally:
        clear_operation()
