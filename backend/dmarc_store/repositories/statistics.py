from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from sqlalchemy import and_, case, func, select
from sqlalchemy.sql.elements import ColumnElement

from dmarc_store.models import Report, ReportRecord
from dmarc_store.observability.metrics import QUERY_LATENCY
from dmarc_store.query.filters import (
    RECORD_COLUMNS,
    REPORT_AGGREGATES,
    CompiledFilter,
    compile_filter,
    period_clause,
)
from dmarc_store.repositories.domain import DomainRef
from dmarc_store.schemas.common import Alignment, DateRange, Disposition
from dmarc_store.schemas.statistics import EmailTotals, IpStats, OrganizationStats, SummaryStats

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork

# Filter keys that make sense for a period summary; domain and period come
# from dedicated arguments.
_STAT_FILTER_KEYS = ("organization", "dkim", "spf", "disposition", "status")

_PASS = int(Alignment.PASS)


def _sum_if(cond: ColumnElement) -> ColumnElement:
    return func.coalesce(func.sum(case((cond, ReportRecord.rcount), else_=0)), 0)


class StatisticsRepository:
    """Read-only rollups over a period, optionally limited to one domain."""

    def __init__(self, uow: "UnitOfWork") -> None:
        self.uow = uow

    def _compile(
        self,
        domain: Optional[DomainRef],
        date_range: Optional[DateRange],
        filter_map: Optional[Mapping[str, Any]],
        post_target: Mapping[str, ColumnElement] = RECORD_COLUMNS,
    ) -> CompiledFilter:
        fmap = {k: v for k, v in (filter_map or {}).items() if k in _STAT_FILTER_KEYS}
        if domain is not None:
            fmap["domain"] = domain
        compiled = compile_filter(fmap, resolve_domain=self.uow.domains.resolve_id, post_target=post_target)
        if date_range is not None:
            compiled.pre.add("range", period_clause(date_range.date1, date_range.date2))
        return compiled

    @staticmethod
    def _where(compiled: CompiledFilter) -> List[ColumnElement]:
        return compiled.pre.clauses + compiled.post.clauses

    def summary(
        self,
        domain: Optional[DomainRef] = None,
        date_range: Optional[DateRange] = None,
        filter_map: Optional[Mapping[str, Any]] = None,
    ) -> SummaryStats:
        compiled = self._compile(domain, date_range, filter_map)
        dkim_pass = ReportRecord.dkim_align == _PASS
        spf_pass = ReportRecord.spf_align == _PASS
        totals_stmt = (
            select(
                func.coalesce(func.sum(ReportRecord.rcount), 0),
                _sum_if(and_(dkim_pass, spf_pass)),
                _sum_if(and_(dkim_pass, ReportRecord.spf_align != _PASS)),
                _sum_if(and_(ReportRecord.dkim_align != _PASS, spf_pass)),
                _sum_if(ReportRecord.disposition == int(Disposition.REJECT)),
                _sum_if(ReportRecord.disposition == int(Disposition.QUARANTINE)),
                func.count(ReportRecord.ip.distinct()),
            )
            .select_from(ReportRecord)
            .join(Report, Report.id == ReportRecord.report_id)
            .where(*self._where(compiled))
        )

        if compiled.post.is_empty:
            orgs = (
                select(Report.org)
                .where(*compiled.pre.clauses)
                .group_by(Report.org)
                .subquery("orgs")
            )
        else:
            # Report-level filtering: a report matches by the worst of its records.
            by_report = self._compile(domain, date_range, filter_map, post_target=REPORT_AGGREGATES)
            orgs = (
                select(Report.org)
                .join(ReportRecord, ReportRecord.report_id == Report.id)
                .where(*by_report.pre.clauses)
                .group_by(Report.id, Report.org)
                .having(by_report.post.condition())
                .subquery("orgs")
            )
        orgs_stmt = select(func.count(orgs.c.org.distinct()))

        with QUERY_LATENCY.labels(operation="statistics.summary").time():
            with self.uow.guard("Failed to get summary information") as db:
                row = db.execute(totals_stmt).one()
                org_count = db.execute(orgs_stmt).scalar_one()
        emails = EmailTotals(
            total=int(row[0]),
            dkim_spf_aligned=int(row[1]),
            dkim_aligned=int(row[2]),
            spf_aligned=int(row[3]),
            rejected=int(row[4]),
            quarantined=int(row[5]),
        )
        return SummaryStats(emails=emails, organizations=int(org_count), ips=int(row[6]))

    def ips(
        self,
        domain: Optional[DomainRef] = None,
        date_range: Optional[DateRange] = None,
        filter_map: Optional[Mapping[str, Any]] = None,
    ) -> List[IpStats]:
        compiled = self._compile(domain, date_range, filter_map)
        emails = func.sum(ReportRecord.rcount).label("emails")
        stmt = (
            select(
                ReportRecord.ip,
                emails,
                _sum_if(ReportRecord.dkim_align == _PASS),
                _sum_if(ReportRecord.spf_align == _PASS),
                _sum_if(ReportRecord.disposition == int(Disposition.REJECT)),
                _sum_if(ReportRecord.disposition == int(Disposition.QUARANTINE)),
            )
            .select_from(ReportRecord)
            .join(Report, Report.id == ReportRecord.report_id)
            .where(*self._where(compiled))
            .group_by(ReportRecord.ip)
            .order_by(emails.desc(), ReportRecord.ip)
        )
        with QUERY_LATENCY.labels(operation="statistics.ips").time():
            with self.uow.guard("Failed to get IPs summary information") as db:
                rows = db.execute(stmt).all()
        return [
            IpStats(
                ip=row[0],
                emails=int(row[1]),
                dkim_aligned=int(row[2]),
                spf_aligned=int(row[3]),
                rejected=int(row[4]),
                quarantined=int(row[5]),
            )
            for row in rows
        ]

    def organizations(
        self,
        domain: Optional[DomainRef] = None,
        date_range: Optional[DateRange] = None,
        filter_map: Optional[Mapping[str, Any]] = None,
    ) -> List[OrganizationStats]:
        compiled = self._compile(domain, date_range, filter_map)
        rr = (
            select(ReportRecord.report_id, func.sum(ReportRecord.rcount).label("rcount"))
            .where(*compiled.post.clauses)
            .group_by(ReportRecord.report_id)
            .subquery("rr")
        )
        emails = func.sum(rr.c.rcount).label("emails")
        stmt = (
            select(Report.org, func.count(Report.id), emails)
            .join(rr, rr.c.report_id == Report.id)
            .where(*compiled.pre.clauses)
            .group_by(Report.org)
            .order_by(emails.desc(), Report.org)
        )
        with QUERY_LATENCY.labels(operation="statistics.organizations").time():
            with self.uow.guard("Failed to get summary information of reporting organizations") as db:
                rows = db.execute(stmt).all()
        return [OrganizationStats(name=row[0], reports=int(row[1]), emails=int(row[2] or 0)) for row in rows]
