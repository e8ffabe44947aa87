from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import and_, func, select

from dmarc_store.db.types import normalize_ip
from dmarc_store.errors import ValidationError
from dmarc_store.models import Report, ReportRecord, UserDomain
from dmarc_store.repositories.domain import DomainRef
from dmarc_store.schemas.statistics import HostStats

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork


class HostRepository:
    def __init__(self, uow: "UnitOfWork") -> None:
        self.uow = uow

    def statistics(self, ip: str, user_id: int = 0, domain: Optional[DomainRef] = None) -> HostStats:
        """Reports and messages mentioning ``ip`` plus the two latest report periods."""
        try:
            ip = normalize_ip(ip)
        except ValueError:
            raise ValidationError(f"Incorrect IP address: {ip}") from None

        conds = [ReportRecord.ip == ip]
        if domain is not None:
            domain_id = self.uow.domains.fetch(domain).id
            conds.append(Report.domain_id == domain_id)

        def _scoped(stmt):
            stmt = stmt.select_from(ReportRecord).join(Report, Report.id == ReportRecord.report_id)
            if user_id:
                stmt = stmt.join(
                    UserDomain,
                    and_(UserDomain.domain_id == Report.domain_id, UserDomain.user_id == user_id),
                )
            return stmt.where(*conds)

        totals = _scoped(
            select(
                func.count(ReportRecord.report_id.distinct()),
                func.coalesce(func.sum(ReportRecord.rcount), 0),
            )
        )
        latest = (
            _scoped(select(Report.id, Report.begin_time))
            .distinct()
            .order_by(Report.begin_time.desc(), Report.id.desc())
            .limit(2)
        )
        with self.uow.transaction("Failed to get the host statistics") as db:
            reports, messages = db.execute(totals).one()
            last_report = [row.begin_time for row in db.execute(latest)]
        return HostStats(reports=int(reports), messages=int(messages), last_report=last_report)
