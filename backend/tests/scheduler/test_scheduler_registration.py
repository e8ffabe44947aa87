# backend/tests/scheduler/test_scheduler_registration.py

from apscheduler.jobstores.memory import MemoryJobStore

from dmarc_store.config import Settings
from dmarc_store.scheduler.setup import build_scheduler, configure_jobs, start_scheduler


def test_configure_jobs_registers_expected_jobs() -> None:
    """
    Ensure the scheduler registers the retention jobs.

    This verifies that:
      - configure_jobs() can be called without errors
      - the scheduler ends up with the reports and report log cleaners
    """
    settings = Settings(SCHEDULER_TZ="Europe/Berlin", REPORTS_CLEANER_HOUR=1)
    scheduler = build_scheduler(settings)

    configure_jobs(scheduler, settings)

    job_ids = sorted(job.id for job in scheduler.get_jobs())
    assert job_ids == ["reportlog-cleaner", "reports-cleaner"]
    assert str(scheduler.timezone) == "Europe/Berlin"
    assert isinstance(scheduler._jobstores["default"], MemoryJobStore)


def test_disabled_scheduler_is_not_started() -> None:
    assert start_scheduler(Settings(SCHEDULER_ENABLED=False)) is None
