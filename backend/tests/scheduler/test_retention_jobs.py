from datetime import datetime, timedelta

from _helpers import seed_reports
from dmarc_store.scheduler.jobs import clean_report_log, clean_reports
from dmarc_store.schemas.report_log import ReportLogItem
from dmarc_store.utils.clock import utcnow


def test_clean_reports_keeps_minimum_and_deletes_oldest_first(uow):
    old = seed_reports(uow, 5, start=datetime(2020, 1, 1))
    deleted = clean_reports(uow, days_old=30, delete_maximum=2, leave_minimum=1)
    assert deleted == 2
    remaining = {r.external_id for r in uow.reports.list()}
    assert remaining == {r.external_id for r in old[2:]}


def test_clean_reports_respects_leave_minimum(uow):
    seed_reports(uow, 3, start=datetime(2020, 1, 1))
    assert clean_reports(uow, days_old=30, delete_maximum=10, leave_minimum=5) == 0
    assert uow.reports.count() == 3


def test_clean_reports_without_delete_maximum_removes_every_old_report(uow):
    seed_reports(uow, 4, start=datetime(2020, 1, 1))
    assert clean_reports(uow, days_old=30, delete_maximum=0, leave_minimum=3) == 4
    assert uow.reports.count() == 0


def test_clean_reports_keeps_recent_reports(uow):
    seed_reports(uow, 2, start=datetime(2020, 1, 1))
    recent = utcnow() - timedelta(days=2)
    seed_reports(uow, 1, start=recent)
    assert clean_reports(uow, days_old=30, delete_maximum=0, leave_minimum=0) == 2
    assert uow.reports.count() == 1


def test_clean_report_log(uow):
    uow.report_log.save(ReportLogItem(source=1, success=True, event_time=datetime(2020, 1, 1)))
    uow.report_log.save(ReportLogItem(source=1, success=True))
    assert clean_report_log(uow, days_old=30) == 1
    assert uow.report_log.count() == 1
