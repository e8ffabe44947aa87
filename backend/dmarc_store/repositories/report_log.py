from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.sql import Select

from dmarc_store.errors import NotFoundError, ValidationError
from dmarc_store.models import ReportLogEntry
from dmarc_store.schemas.common import DirectionLiteral, PageSpec, ReportLogSource
from dmarc_store.schemas.report_log import ReportLogItem
from dmarc_store.utils.batching import chunked
from dmarc_store.utils.clock import as_utc_naive, utcnow

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)

_FILTER_KEYS = ("from_time", "till_time", "user_id")


class ReportLogRepository:
    """Audit trail of ingestion attempts. Rows are never updated."""

    def __init__(self, uow: "UnitOfWork") -> None:
        self.uow = uow

    def fetch(self, item_id: int) -> ReportLogItem:
        with self.uow.guard("Failed to get the log item"):
            row = self.uow.session.get(ReportLogEntry, item_id)
            if row is None:
                raise NotFoundError("The log item is not found")
            return ReportLogItem.model_validate(row)

    def save(self, item: ReportLogItem) -> ReportLogItem:
        if item.id is not None:
            raise ValidationError("Log items cannot be changed once stored")
        try:
            ReportLogSource(item.source)
        except ValueError:
            raise ValidationError(f"Incorrect log item source: {item.source}") from None
        with self.uow.transaction("Failed to insert a log item") as db:
            row = ReportLogEntry(
                user_id=item.user_id,
                domain=item.domain,
                external_id=item.external_id,
                event_time=as_utc_naive(item.event_time) or utcnow(),
                filename=item.filename,
                source=item.source,
                success=item.success,
                message=item.message,
            )
            db.add(row)
            db.flush()
            return ReportLogItem.model_validate(row)

    # ---------------------------------------------------------------------------
    # list / count / delete share one selection
    # ---------------------------------------------------------------------------

    @staticmethod
    def _conditions(filter_map: Optional[Mapping[str, Any]]) -> List[Any]:
        conds: List[Any] = []
        if not filter_map:
            return conds
        for key in _FILTER_KEYS:
            value = filter_map.get(key)
            if value is None:
                continue
            if key in ("from_time", "till_time"):
                if not isinstance(value, datetime):
                    raise ValidationError(f"Filter: {key} must be a timestamp")
                value = as_utc_naive(value)
                if key == "from_time":
                    conds.append(ReportLogEntry.event_time >= value)
                else:
                    conds.append(ReportLogEntry.event_time < value)
            else:
                conds.append(ReportLogEntry.user_id == int(value))
        return conds

    def _selection(
        self,
        filter_map: Optional[Mapping[str, Any]],
        direction: DirectionLiteral,
        page: Optional[PageSpec],
    ) -> Select:
        if direction not in ("ascent", "descent"):
            raise ValidationError(f"Incorrect sort direction: {direction}")
        stmt = select(ReportLogEntry).where(*self._conditions(filter_map))
        if direction == "descent":
            stmt = stmt.order_by(ReportLogEntry.event_time.desc(), ReportLogEntry.id.desc())
        else:
            stmt = stmt.order_by(ReportLogEntry.event_time.asc(), ReportLogEntry.id.asc())
        if page is not None:
            if page.offset:
                stmt = stmt.offset(page.offset)
            if page.count:
                stmt = stmt.limit(page.count)
        return stmt

    def list(
        self,
        filter_map: Optional[Mapping[str, Any]] = None,
        direction: DirectionLiteral = "ascent",
        page: Optional[PageSpec] = None,
    ) -> List[ReportLogItem]:
        stmt = self._selection(filter_map, direction, page)
        with self.uow.guard("Failed to get the logs") as db:
            return [ReportLogItem.model_validate(row) for row in db.execute(stmt).scalars()]

    def count(
        self,
        filter_map: Optional[Mapping[str, Any]] = None,
        page: Optional[PageSpec] = None,
    ) -> int:
        stmt = select(func.count(ReportLogEntry.id)).where(*self._conditions(filter_map))
        with self.uow.guard("Failed to get the number of log items") as db:
            total = int(db.execute(stmt).scalar_one())
        if page is not None:
            total = max(total - page.offset, 0)
            if page.count > 0:
                total = min(total, page.count)
        return total

    def delete(
        self,
        filter_map: Optional[Mapping[str, Any]] = None,
        direction: DirectionLiteral = "ascent",
        page: Optional[PageSpec] = None,
    ) -> int:
        stmt = self._selection(filter_map, direction, page).with_only_columns(ReportLogEntry.id)
        with self.uow.transaction("Failed to remove the log data") as db:
            ids = list(db.execute(stmt).scalars())
            for chunk in chunked(ids):
                db.execute(
                    delete(ReportLogEntry)
                    .where(ReportLogEntry.id.in_(chunk))
                    .execution_options(synchronize_session=False)
                )
        logger.info("report_log.deleted", count=len(ids))
        return len(ids)
