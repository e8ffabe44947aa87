import pytest
from prometheus_client import REGISTRY

from _helpers import make_report
from dmarc_store.errors import ConflictError
from dmarc_store.observability.instrument import log_job
from dmarc_store.observability.logging import bind_operation, clear_operation, configure_logging


def test_log_job_passes_result_through():
    @log_job("unit-test-job")
    def job(n):
        return list(range(n))

    assert job(3) == [0, 1, 2]
    assert job.__name__ == "job"


def test_log_job_reraises():
    @log_job("failing-job")
    def job():
        raise ValueError("bad")

    with pytest.raises(ValueError, match="bad"):
        job()


def test_configure_logging_and_context():
    configure_logging("debug")
    bind_operation(user_id=3, job="test")
    clear_operation()


def _ingested(outcome):
    return REGISTRY.get_sample_value("dmarc_reports_ingested_total", {"outcome": outcome}) or 0.0


def test_ingestion_outcomes_are_counted(uow):
    saved, conflicts = _ingested("saved"), _ingested("conflict")
    uow.reports.save(make_report())
    with pytest.raises(ConflictError):
        uow.reports.save(make_report())
    assert _ingested("saved") == saved + 1
    assert _ingested("conflict") == conflicts + 1
