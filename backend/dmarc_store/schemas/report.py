from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from dmarc_store.db.types import normalize_ip
from dmarc_store.schemas.common import Alignment, Disposition


class PolicyData(BaseModel):
    adkim: Optional[str] = None
    aspf: Optional[str] = None
    p: Optional[str] = None
    sp: Optional[str] = None
    np: Optional[str] = None
    pct: Optional[str] = None
    fo: Optional[str] = None


class RecordData(BaseModel):
    """One <record> row of a report. Alignment/disposition are kept as labels."""

    ip: str
    rcount: int = Field(..., ge=0)
    disposition: str = "none"
    reason: Optional[List[Any]] = None
    dkim_auth: Optional[List[Any]] = None
    spf_auth: Optional[List[Any]] = None
    dkim_align: str = "fail"
    spf_align: str = "fail"
    envelope_to: Optional[str] = None
    envelope_from: Optional[str] = None
    header_from: Optional[str] = None

    @field_validator("ip")
    @classmethod
    def _canonical_ip(cls, value: str) -> str:
        return normalize_ip(value)

    @field_validator("dkim_align", "spf_align")
    @classmethod
    def _alignment_label(cls, value: str) -> str:
        return Alignment.from_label(value).label

    @field_validator("disposition")
    @classmethod
    def _disposition_label(cls, value: str) -> str:
        return Disposition.from_label(value).label


class ReportData(BaseModel):
    id: Optional[int] = None
    domain: str
    external_id: str
    org: str
    begin_time: datetime
    end_time: datetime
    loaded_time: Optional[datetime] = None
    email: Optional[str] = None
    extra_contact_info: Optional[str] = None
    error_string: Optional[List[str]] = None
    policy: PolicyData = Field(default_factory=PolicyData)
    seen: bool = False
    records: List[RecordData] = Field(default_factory=list)

    @field_validator("domain")
    @classmethod
    def _lower_domain(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_period(self):
        if self.end_time < self.begin_time:
            raise ValueError("end_time must not be earlier than begin_time")
        return self


class ReportSummaryRow(BaseModel):
    """One row of the report list: a report plus the rollup of its records."""

    domain: str
    external_id: str
    org: str
    begin_time: datetime
    end_time: datetime
    seen: bool
    messages: int
    dkim_align: Optional[str] = None
    spf_align: Optional[str] = None
    disposition: Optional[str] = None
