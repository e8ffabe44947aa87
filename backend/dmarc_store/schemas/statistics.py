from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel


class EmailTotals(BaseModel):
    total: int = 0
    dkim_spf_aligned: int = 0
    dkim_aligned: int = 0
    spf_aligned: int = 0
    rejected: int = 0
    quarantined: int = 0

    @property
    def not_aligned(self) -> int:
        return self.total - self.dkim_spf_aligned - self.dkim_aligned - self.spf_aligned


class SummaryStats(BaseModel):
    emails: EmailTotals
    organizations: int
    ips: int


class IpStats(BaseModel):
    ip: str
    emails: int
    dkim_aligned: int
    spf_aligned: int
    rejected: int
    quarantined: int


class OrganizationStats(BaseModel):
    name: str
    reports: int
    emails: int


class HostStats(BaseModel):
    reports: int
    messages: int
    last_report: List[datetime]
