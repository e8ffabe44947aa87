from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Tuple

import structlog
from sqlalchemy import and_, delete, extract, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import Select

from dmarc_store.errors import ConflictError, NotFoundError, SoftError, StorageFault, ValidationError
from dmarc_store.models import Domain, Report, ReportRecord, UserDomain
from dmarc_store.observability.metrics import (
    DOMAINS_PROVISIONED,
    QUERY_LATENCY,
    REPORTS_DELETED,
    REPORTS_INGESTED,
)
from dmarc_store.query.filters import REPORT_AGGREGATES, CompiledFilter, compile_filter
from dmarc_store.repositories.domain import DomainRef
from dmarc_store.schemas.common import Alignment, Disposition, PageSpec, SortSpec
from dmarc_store.schemas.domain import DomainData
from dmarc_store.schemas.report import PolicyData, RecordData, ReportData, ReportSummaryRow
from dmarc_store.utils.batching import chunked
from dmarc_store.utils.clock import as_utc_naive, utcnow

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)

SORT_FIELDS = ("begin_time", "end_time", "org", "domain", "external_id", "messages")
RECORDS_ORDER_SETTING = "report-view.sort-records-by"
DEFAULT_RECORDS_ORDER = "message-count,descent"
AUTO_DOMAIN_DESCRIPTION = "The domain was added automatically."


def parse_records_order(value: str) -> Tuple[str, bool]:
    """Parse ``"<ip|message-count>,<ascent|descent>"`` into (field, descending)."""
    parts = [p.strip() for p in (value or "").split(",")]
    if len(parts) != 2 or parts[0] not in ("ip", "message-count") or parts[1] not in ("ascent", "descent"):
        raise ValidationError(f"Incorrect record sort order: {value!r}")
    return parts[0], parts[1] == "descent"


class ReportRepository:
    def __init__(self, uow: "UnitOfWork") -> None:
        self.uow = uow

    # ---------------------------------------------------------------------------
    # Selection shared by list / count / delete
    # ---------------------------------------------------------------------------

    def _compile(self, filter_map: Optional[Mapping[str, Any]]) -> CompiledFilter:
        return compile_filter(filter_map, resolve_domain=self.uow.domains.resolve_id)

    @staticmethod
    def _scope(stmt: Select, user_id: int) -> Select:
        if user_id:
            stmt = stmt.join(
                UserDomain,
                and_(UserDomain.domain_id == Report.domain_id, UserDomain.user_id == user_id),
            )
        return stmt

    def _reports(self, compiled: CompiledFilter, user_id: int) -> Select:
        """Reports joined to their domain with the pre-aggregation predicates applied."""
        stmt = select(
            Report.id,
            Report.org,
            Report.begin_time,
            Report.end_time,
            Report.external_id,
            Report.seen,
            Domain.fqdn,
        ).join(Domain, Domain.id == Report.domain_id)
        stmt = self._scope(stmt, user_id)
        cond = compiled.pre.condition()
        if cond is not None:
            stmt = stmt.where(cond)
        return stmt

    def _selection(
        self,
        compiled: CompiledFilter,
        sort: Optional[SortSpec],
        page: Optional[PageSpec],
        user_id: int,
    ) -> Select:
        rp = self._reports(compiled, user_id).subquery("rp")
        messages = func.coalesce(func.sum(ReportRecord.rcount), 0).label("messages")
        stmt = (
            select(
                rp.c.id,
                rp.c.fqdn,
                rp.c.external_id,
                rp.c.org,
                rp.c.begin_time,
                rp.c.end_time,
                rp.c.seen,
                messages,
                REPORT_AGGREGATES["dkim"].label("dkim_align"),
                REPORT_AGGREGATES["spf"].label("spf_align"),
                REPORT_AGGREGATES["disposition"].label("disposition"),
            )
            .select_from(rp.outerjoin(ReportRecord, ReportRecord.report_id == rp.c.id))
            .group_by(
                rp.c.id, rp.c.fqdn, rp.c.external_id, rp.c.org, rp.c.begin_time, rp.c.end_time, rp.c.seen
            )
        )
        post = compiled.post.condition()
        if post is not None:
            stmt = stmt.having(post)

        if sort is not None:
            if sort.field not in SORT_FIELDS:
                raise ValidationError(f"Incorrect sort field: {sort.field}")
            columns = {
                "begin_time": rp.c.begin_time,
                "end_time": rp.c.end_time,
                "org": rp.c.org,
                "domain": rp.c.fqdn,
                "external_id": rp.c.external_id,
                "messages": messages,
            }
            key = columns[sort.field]
            if sort.descending:
                stmt = stmt.order_by(key.desc(), rp.c.id.desc())
            else:
                stmt = stmt.order_by(key.asc(), rp.c.id.asc())

        if page is not None:
            if page.offset:
                stmt = stmt.offset(page.offset)
            if page.count:
                stmt = stmt.limit(page.count)
        return stmt

    # ---------------------------------------------------------------------------
    # list / count / delete
    # ---------------------------------------------------------------------------

    def list(
        self,
        filter_map: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: Optional[PageSpec] = None,
        *,
        user_id: int = 0,
    ) -> List[ReportSummaryRow]:
        compiled = self._compile(filter_map)
        stmt = self._selection(compiled, sort or SortSpec(), page, user_id)
        with QUERY_LATENCY.labels(operation="report.list").time():
            with self.uow.guard("Failed to get the report list") as db:
                rows = db.execute(stmt).all()
        return [
            ReportSummaryRow(
                domain=row.fqdn,
                external_id=row.external_id,
                org=row.org,
                begin_time=row.begin_time,
                end_time=row.end_time,
                seen=bool(row.seen),
                messages=int(row.messages or 0),
                dkim_align=Alignment.label_of(row.dkim_align),
                spf_align=Alignment.label_of(row.spf_align),
                disposition=Disposition.label_of(row.disposition),
            )
            for row in rows
        ]

    def count(
        self,
        filter_map: Optional[Mapping[str, Any]] = None,
        page: Optional[PageSpec] = None,
        *,
        user_id: int = 0,
    ) -> int:
        """Number of reports ``list`` would return for the same filter and page."""
        compiled = self._compile(filter_map)
        if compiled.post.is_empty:
            source = self._reports(compiled, user_id).subquery()
        else:
            source = self._selection(compiled, None, None, user_id).subquery()
        stmt = select(func.count()).select_from(source)
        with QUERY_LATENCY.labels(operation="report.count").time():
            with self.uow.guard("Failed to get the number of reports") as db:
                total = int(db.execute(stmt).scalar_one())
        if page is not None:
            total = max(total - page.offset, 0)
            if page.count > 0:
                total = min(total, page.count)
        return total

    def delete(
        self,
        filter_map: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: Optional[PageSpec] = None,
        *,
        user_id: int = 0,
    ) -> int:
        """Delete exactly the reports ``list`` would return, records first."""
        compiled = self._compile(filter_map)
        stmt = self._selection(compiled, sort or SortSpec(), page, user_id)
        with self.uow.transaction("Failed to delete reports") as db:
            ids = [row.id for row in db.execute(stmt)]
            for chunk in chunked(ids):
                db.execute(
                    delete(ReportRecord)
                    .where(ReportRecord.report_id.in_(chunk))
                    .execution_options(synchronize_session=False)
                )
            for chunk in chunked(ids):
                db.execute(
                    delete(Report)
                    .where(Report.id.in_(chunk))
                    .execution_options(synchronize_session=False)
                )
        REPORTS_DELETED.inc(len(ids))
        logger.info("report.deleted", count=len(ids), filter_keys=compiled.pre.keys + compiled.post.keys)
        return len(ids)

    def months(self, *, user_id: int = 0) -> List[str]:
        """Distinct ``YYYY-MM`` periods covered by reports, newest first."""
        found = set()
        with self.uow.guard("Failed to get a list of months") as db:
            for column in (Report.begin_time, Report.end_time):
                stmt = select(extract("year", column), extract("month", column)).distinct()
                for year, month in db.execute(self._scope(stmt, user_id)):
                    found.add((int(year), int(month)))
        return [f"{year:04d}-{month:02d}" for year, month in sorted(found, reverse=True)]

    def organizations(self, *, user_id: int = 0) -> List[str]:
        stmt = self._scope(select(Report.org).distinct(), user_id).order_by(Report.org)
        with self.uow.guard("Failed to get a list of organizations") as db:
            return list(db.execute(stmt).scalars())

    # ---------------------------------------------------------------------------
    # fetch / set_property
    # ---------------------------------------------------------------------------

    def _domain_id(self, domain: DomainRef) -> Optional[int]:
        if isinstance(domain, DomainData) and domain.id is not None:
            return domain.id
        found = self.uow.domains.find(domain)
        return found.id if found is not None else None

    def _find(
        self,
        domain: DomainRef,
        external_id: str,
        begin_time: Optional[datetime],
        org: Optional[str],
        user_id: int,
    ) -> Tuple[Report, str]:
        domain_id = self._domain_id(domain)
        if domain_id is None:
            raise NotFoundError("Report not found")
        stmt = (
            select(Report, Domain.fqdn)
            .join(Domain, Domain.id == Report.domain_id)
            .where(Report.domain_id == domain_id, Report.external_id == external_id)
        )
        if begin_time is not None:
            stmt = stmt.where(Report.begin_time == as_utc_naive(begin_time))
        if org is not None:
            stmt = stmt.where(Report.org == org)
        stmt = self._scope(stmt, user_id).order_by(Report.begin_time.desc(), Report.id.desc()).limit(1)
        row = self.uow.session.execute(stmt).first()
        if row is None:
            raise NotFoundError("Report not found")
        return row[0], row[1]

    def fetch(
        self,
        domain: DomainRef,
        external_id: str,
        *,
        begin_time: Optional[datetime] = None,
        org: Optional[str] = None,
        records_order: Optional[str] = None,
        user_id: int = 0,
    ) -> ReportData:
        if records_order is None:
            records_order = self.uow.mapper("setting").get(
                RECORDS_ORDER_SETTING, user_id, DEFAULT_RECORDS_ORDER
            )
        order_field, descending = parse_records_order(records_order)
        order_col = ReportRecord.ip if order_field == "ip" else ReportRecord.rcount
        order_by = order_col.desc() if descending else order_col.asc()

        with self.uow.guard("Failed to get the report data") as db:
            report, fqdn = self._find(domain, external_id, begin_time, org, user_id)
            records = db.execute(
                select(ReportRecord)
                .where(ReportRecord.report_id == report.id)
                .order_by(order_by, ReportRecord.id)
            ).scalars().all()
            return self._to_data(report, fqdn, records)

    def set_property(
        self,
        domain: DomainRef,
        external_id: str,
        name: str,
        value: Any,
        *,
        begin_time: Optional[datetime] = None,
        org: Optional[str] = None,
        user_id: int = 0,
    ) -> None:
        if name != "seen" or not isinstance(value, bool):
            raise ValidationError("Incorrect report property or value")
        with self.uow.transaction("Failed to update the report property") as db:
            report, _ = self._find(domain, external_id, begin_time, org, user_id)
            report.seen = value
            db.flush()

    @staticmethod
    def _to_data(report: Report, fqdn: str, records: Sequence[ReportRecord]) -> ReportData:
        return ReportData(
            id=report.id,
            domain=fqdn,
            external_id=report.external_id,
            org=report.org,
            begin_time=report.begin_time,
            end_time=report.end_time,
            loaded_time=report.loaded_time,
            email=report.email,
            extra_contact_info=report.extra_contact_info,
            error_string=report.error_string,
            policy=PolicyData(
                adkim=report.policy_adkim,
                aspf=report.policy_aspf,
                p=report.policy_p,
                sp=report.policy_sp,
                np=report.policy_np,
                pct=report.policy_pct,
                fo=report.policy_fo,
            ),
            seen=bool(report.seen),
            records=[
                RecordData(
                    ip=rec.ip,
                    rcount=rec.rcount,
                    disposition=Disposition.label_of(rec.disposition),
                    reason=rec.reason,
                    dkim_auth=rec.dkim_auth,
                    spf_auth=rec.spf_auth,
                    dkim_align=Alignment.label_of(rec.dkim_align),
                    spf_align=Alignment.label_of(rec.spf_align),
                    envelope_to=rec.envelope_to,
                    envelope_from=rec.envelope_from,
                    header_from=rec.header_from,
                )
                for rec in records
            ],
        )

    # ---------------------------------------------------------------------------
    # save (ingestion)
    # ---------------------------------------------------------------------------

    def _provision_domain(self, fqdn: str) -> int:
        now = utcnow()
        try:
            with self.uow.transaction("Failed to add the domain") as db:
                row = Domain(
                    fqdn=fqdn,
                    active=True,
                    description=AUTO_DOMAIN_DESCRIPTION,
                    created_time=now,
                    updated_time=now,
                )
                db.add(row)
                db.flush()
                domain_id = row.id
        except StorageFault as fault:
            if not isinstance(fault.origin, IntegrityError):
                raise
            # Another ingester created it first.
            found = self.uow.domains.find(fqdn)
            if found is None:
                raise
            logger.info("domain.provision_race", fqdn=fqdn)
            return found.id
        DOMAINS_PROVISIONED.inc()
        logger.info("domain.provisioned", fqdn=fqdn)
        return domain_id

    def _ingest_domain(self, fqdn: str, user_id: int) -> int:
        domains = self.uow.domains
        found = domains.find(fqdn)
        if found is not None:
            if not found.active:
                raise SoftError("Failed to add an incoming report: the domain is inactive")
            if user_id and not domains.is_assigned_to(found, user_id):
                raise SoftError(f"Failed to add an incoming report: unknown domain {fqdn}")
            return found.id
        if user_id == 0 and (domains.count(maximum=1) == 0 or self.uow.allow_list.matches(fqdn)):
            return self._provision_domain(fqdn)
        raise SoftError(f"Failed to add an incoming report: unknown domain {fqdn}")

    def _fingerprint_exists(self, domain_id: int, report: ReportData) -> bool:
        stmt = select(Report.id).where(
            Report.domain_id == domain_id,
            Report.begin_time == as_utc_naive(report.begin_time),
            Report.org == report.org,
            Report.external_id == report.external_id,
        )
        with self.uow.guard("Failed to check the report fingerprint") as db:
            return db.execute(stmt).first() is not None

    def save(self, report: ReportData, *, user_id: int = 0) -> ReportData:
        """
        Store an incoming report and its records in one transaction.

        Raises ConflictError when a report with the same fingerprint is
        already stored; nothing is written in that case.
        """
        try:
            domain_id = self._ingest_domain(report.domain, user_id)
        except SoftError:
            REPORTS_INGESTED.labels(outcome="rejected").inc()
            raise

        loaded_time = utcnow()
        row = Report(
            domain_id=domain_id,
            begin_time=as_utc_naive(report.begin_time),
            end_time=as_utc_naive(report.end_time),
            loaded_time=loaded_time,
            org=report.org,
            external_id=report.external_id,
            email=report.email,
            extra_contact_info=report.extra_contact_info,
            error_string=report.error_string,
            policy_adkim=report.policy.adkim,
            policy_aspf=report.policy.aspf,
            policy_p=report.policy.p,
            policy_sp=report.policy.sp,
            policy_np=report.policy.np,
            policy_pct=report.policy.pct,
            policy_fo=report.policy.fo,
            seen=False,
        )
        try:
            with self.uow.transaction("Failed to insert the report") as db:
                db.add(row)
                db.flush()
                report_id = row.id
                db.add_all([
                    ReportRecord(
                        report_id=report_id,
                        ip=rec.ip,
                        rcount=rec.rcount,
                        disposition=int(Disposition.from_label(rec.disposition)),
                        reason=rec.reason,
                        dkim_auth=rec.dkim_auth,
                        spf_auth=rec.spf_auth,
                        dkim_align=int(Alignment.from_label(rec.dkim_align)),
                        spf_align=int(Alignment.from_label(rec.spf_align)),
                        envelope_to=rec.envelope_to,
                        envelope_from=rec.envelope_from,
                        header_from=rec.header_from,
                    )
                    for rec in report.records
                ])
                db.flush()
        except StorageFault as fault:
            if isinstance(fault.origin, IntegrityError) and self._fingerprint_exists(domain_id, report):
                REPORTS_INGESTED.labels(outcome="conflict").inc()
                logger.info(
                    "report.conflict",
                    domain=report.domain,
                    org=report.org,
                    external_id=report.external_id,
                )
                raise ConflictError("This report has already been loaded") from fault.origin
            REPORTS_INGESTED.labels(outcome="error").inc()
            raise

        REPORTS_INGESTED.labels(outcome="saved").inc()
        logger.info(
            "report.saved",
            domain=report.domain,
            org=report.org,
            external_id=report.external_id,
            records=len(report.records),
        )
        return report.model_copy(update={"id": report_id, "loaded_time": loaded_time, "seen": False})
