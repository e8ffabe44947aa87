from datetime import datetime, timedelta

import pytest

from dmarc_store.errors import NotFoundError, ValidationError
from dmarc_store.schemas.common import PageSpec, ReportLogSource
from dmarc_store.schemas.report_log import ReportLogItem


def _item(minutes, success=True, user_id=0, **extra):
    return ReportLogItem(
        user_id=user_id,
        domain="example.com",
        external_id=f"r-{minutes}",
        event_time=datetime(2024, 5, 1) + timedelta(minutes=minutes),
        filename="report.xml.gz",
        source=int(ReportLogSource.EMAIL),
        success=success,
        message=None if success else "Failed to add an incoming report: the domain is inactive",
        **extra,
    )


def test_save_and_fetch(uow):
    saved = uow.report_log.save(_item(1, success=False))
    assert saved.id is not None
    fetched = uow.report_log.fetch(saved.id)
    assert fetched.success is False
    assert fetched.source == ReportLogSource.EMAIL
    assert fetched.message.endswith("inactive")

    with pytest.raises(NotFoundError):
        uow.report_log.fetch(saved.id + 100)


def test_save_defaults_event_time(uow):
    saved = uow.report_log.save(ReportLogItem(source=1, success=True))
    assert saved.event_time is not None


def test_save_rejects_stored_items_and_bad_sources(uow):
    with pytest.raises(ValidationError):
        uow.report_log.save(_item(1, id=5))
    with pytest.raises(ValidationError, match="source"):
        uow.report_log.save(ReportLogItem(source=42, success=True))


def test_list_count_and_delete_by_period(uow):
    for minutes in range(6):
        uow.report_log.save(_item(minutes))
    window = {
        "from_time": datetime(2024, 5, 1, 0, 2),
        "till_time": datetime(2024, 5, 1, 0, 5),
    }
    assert [i.external_id for i in uow.report_log.list(window)] == ["r-2", "r-3", "r-4"]
    assert [i.external_id for i in uow.report_log.list(window, "descent")] == ["r-4", "r-3", "r-2"]
    assert uow.report_log.count(window) == 3
    assert uow.report_log.count({}, PageSpec(offset=4, count=10)) == 2

    page = uow.report_log.list({}, "ascent", PageSpec(offset=1, count=2))
    assert [i.external_id for i in page] == ["r-1", "r-2"]

    assert uow.report_log.delete({"till_time": datetime(2024, 5, 1, 0, 3)}) == 3
    assert [i.external_id for i in uow.report_log.list()] == ["r-3", "r-4", "r-5"]


def test_list_filters_by_user(uow):
    uow.report_log.save(_item(1, user_id=0))
    uow.report_log.save(_item(2, user_id=3))
    assert [i.external_id for i in uow.report_log.list({"user_id": 3})] == ["r-2"]


def test_bad_direction_and_filter_values(uow):
    with pytest.raises(ValidationError):
        uow.report_log.list({}, "sideways")
    with pytest.raises(ValidationError):
        uow.report_log.list({"from_time": "yesterday"})
