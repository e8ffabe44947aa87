from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, SmallInteger, String,
)
from dmarc_store.db.base import Base
from dmarc_store.db.types import IPAddress, JSON_PAYLOAD


class Report(Base):
    """
    One aggregate report as delivered by a reporting organization.

    (domain_id, begin_time, org, external_id) is the dedup fingerprint; a second
    delivery of the same report violates ``org_time_id_u``.
    """

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False)
    begin_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    loaded_time = Column(DateTime, nullable=False)
    org = Column(String(255), nullable=False)
    external_id = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    extra_contact_info = Column(String(255), nullable=True)
    error_string = Column(JSON_PAYLOAD, nullable=True)
    policy_adkim = Column(String(20), nullable=True)
    policy_aspf = Column(String(20), nullable=True)
    policy_p = Column(String(20), nullable=True)
    policy_sp = Column(String(20), nullable=True)
    policy_np = Column(String(20), nullable=True)
    policy_pct = Column(String(20), nullable=True)
    policy_fo = Column(String(20), nullable=True)
    seen = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("org_time_id_u", "domain_id", "begin_time", "org", "external_id", unique=True),
        Index("ix_reports_begin_time", "begin_time"),
        Index("ix_reports_end_time", "end_time"),
        Index("ix_reports_org_begin_time", "org", "begin_time"),
    )


class ReportRecord(Base):
    __tablename__ = "rptrecords"

    id = Column(Integer, primary_key=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False)
    ip = Column(IPAddress, nullable=False)
    rcount = Column(Integer, nullable=False)
    disposition = Column(SmallInteger, nullable=False)      # Disposition code
    reason = Column(JSON_PAYLOAD, nullable=True)
    dkim_auth = Column(JSON_PAYLOAD, nullable=True)
    spf_auth = Column(JSON_PAYLOAD, nullable=True)
    dkim_align = Column(SmallInteger, nullable=False)       # Alignment code
    spf_align = Column(SmallInteger, nullable=False)
    envelope_to = Column(String(255), nullable=True)
    envelope_from = Column(String(255), nullable=True)
    header_from = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_rptrecords_report_id", "report_id"),
        Index("ix_rptrecords_ip", "ip"),
    )
