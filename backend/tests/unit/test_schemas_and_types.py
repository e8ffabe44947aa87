from datetime import datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from dmarc_store.db.types import IPAddress, normalize_ip
from dmarc_store.schemas.common import Alignment, DateRange, Disposition, PageSpec
from dmarc_store.schemas.report import RecordData, ReportData


def test_labels_and_codes():
    assert Alignment.from_label("pass") == Alignment.PASS
    assert Disposition.label_of(0) == "reject"
    assert Disposition.label_of(None) is None
    # worst disposition has the smallest code
    assert min(Disposition) == Disposition.REJECT
    with pytest.raises(ValueError):
        Alignment.from_label("maybe")


def test_record_normalizes_values():
    rec = RecordData(ip=" 2001:DB8:0::1 ", rcount=2, dkim_align="PASS", disposition="Quarantine")
    assert rec.ip == "2001:db8::1"
    assert rec.dkim_align == "pass"
    assert rec.spf_align == "fail"
    assert rec.disposition == "quarantine"
    with pytest.raises(PydanticValidationError):
        RecordData(ip="300.1.1.1", rcount=1)


def test_report_period_must_be_ordered():
    with pytest.raises(PydanticValidationError):
        ReportData(
            domain="example.com",
            external_id="x",
            org="acme",
            begin_time=datetime(2024, 1, 2),
            end_time=datetime(2024, 1, 1),
        )
    with pytest.raises(PydanticValidationError):
        DateRange(date1=datetime(2024, 2, 1), date2=datetime(2024, 1, 1))
    with pytest.raises(PydanticValidationError):
        PageSpec(offset=-1)


def test_ip_type_round_trip():
    column_type = IPAddress()
    packed = column_type.process_bind_param("192.0.2.10", None)
    assert packed == bytes([192, 0, 2, 10])
    assert column_type.process_result_value(packed, None) == "192.0.2.10"
    assert normalize_ip(" 2001:DB8::0:1 ") == "2001:db8::1"
