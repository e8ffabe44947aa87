from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import Boolean, and_, func, literal
from sqlalchemy.dialects import sqlite
from sqlalchemy.sql.elements import ColumnElement

from dmarc_store.errors import ValidationError
from dmarc_store.models import Report, ReportRecord
from dmarc_store.schemas.common import Alignment, Disposition
from dmarc_store.schemas.domain import DomainData
from dmarc_store.utils.clock import as_utc_naive

# Padding applied to both ends of a period so that reports whose begin/end
# time sits exactly on the period edge are attributed to one period only.
PERIOD_EPSILON = timedelta(seconds=10)

FILTER_KEYS = ("domain", "month", "organization", "dkim", "spf", "disposition", "status", "before_time")

# Targets for the post-aggregation keys. Reports are filtered by the worst
# value among their records; statistics filter the records themselves.
REPORT_AGGREGATES: Dict[str, ColumnElement] = {
    "dkim": func.min(ReportRecord.dkim_align),
    "spf": func.min(ReportRecord.spf_align),
    "disposition": func.min(ReportRecord.disposition),
}
RECORD_COLUMNS: Dict[str, ColumnElement] = {
    "dkim": ReportRecord.dkim_align,
    "spf": ReportRecord.spf_align,
    "disposition": ReportRecord.disposition,
}

# Used only to render fragments for inspection and logging.
_FRAGMENT_DIALECT = sqlite.dialect(paramstyle="qmark")

DomainResolver = Callable[[str], Optional[int]]


@dataclass(frozen=True)
class Predicate:
    """A filter condition together with the values it binds."""

    key: str
    clause: ColumnElement


@dataclass
class PredicateGroup:
    predicates: List[Predicate] = field(default_factory=list)

    def add(self, key: str, clause: ColumnElement) -> None:
        self.predicates.append(Predicate(key, clause))

    @property
    def is_empty(self) -> bool:
        return not self.predicates

    @property
    def keys(self) -> List[str]:
        return [p.key for p in self.predicates]

    @property
    def clauses(self) -> List[ColumnElement]:
        return [p.clause for p in self.predicates]

    def condition(self) -> Optional[ColumnElement]:
        if self.is_empty:
            return None
        return and_(*self.clauses)

    def compile(self) -> Tuple[str, List[Any]]:
        """Render ``(fragment, binds)`` with ``?`` placeholders in bind order."""
        cond = self.condition()
        if cond is None:
            return "", []
        compiled = cond.compile(dialect=_FRAGMENT_DIALECT)
        binds = [compiled.params[name] for name in (compiled.positiontup or [])]
        return compiled.string, binds

    @property
    def fragment(self) -> str:
        return self.compile()[0]

    @property
    def binds(self) -> List[Any]:
        return self.compile()[1]


@dataclass
class CompiledFilter:
    pre: PredicateGroup = field(default_factory=PredicateGroup)
    post: PredicateGroup = field(default_factory=PredicateGroup)


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def month_bounds(value: str) -> Tuple[datetime, datetime]:
    """Return the first instant of the month and of the next month for ``YYYY-MM``."""
    parts = str(value).split("-")
    if len(parts) != 2:
        raise ValidationError("Incorrect date format")
    try:
        year, month = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValidationError("Incorrect date format") from None
    if year < 1 or year > 9998 or month < 1 or month > 12:
        raise ValidationError("Incorrect month or year value")
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start, end


def period_clause(date1: datetime, date2: datetime) -> ColumnElement:
    """Reports overlapping [date1, date2) once both edges are padded by PERIOD_EPSILON."""
    return and_(
        Report.begin_time < date2 - PERIOD_EPSILON,
        Report.end_time >= date1 + PERIOD_EPSILON,
    )


def _alignment_code(name: str, label: Any) -> int:
    if label == Alignment.FAIL.label:
        return int(Alignment.FAIL)
    if label == Alignment.PASS.label:
        return int(Alignment.PASS)
    raise ValidationError(f"Filter: Incorrect {name.upper()} value")


def _disposition_code(label: Any) -> int:
    try:
        return int(Disposition.from_label(label))
    except ValueError:
        raise ValidationError("Filter: Incorrect value of disposition") from None


def _domain_id(value: Any, resolve_domain: Optional[DomainResolver]) -> int:
    if isinstance(value, DomainData):
        if value.id is None:
            raise ValidationError("Filter: the domain has no identifier")
        return value.id
    if isinstance(value, bool):
        raise ValidationError("Filter: Incorrect domain value")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if resolve_domain is None:
            raise ValidationError("Filter: domain names cannot be resolved here")
        domain_id = resolve_domain(value.strip().lower())
        if domain_id is None:
            raise ValidationError("Filter: unknown domain")
        return domain_id
    raise ValidationError("Filter: Incorrect domain value")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------

def compile_filter(
    filter_map: Optional[Mapping[str, Any]],
    *,
    resolve_domain: Optional[DomainResolver] = None,
    post_target: Mapping[str, ColumnElement] = REPORT_AGGREGATES,
) -> CompiledFilter:
    """
    Compile a semantic filter map into pre- and post-aggregation predicate groups.

    Keys are processed in FILTER_KEYS order regardless of the map's own order,
    so the same filter always produces the same fragment. Unknown keys and
    blank values are ignored.
    """
    compiled = CompiledFilter()
    if not filter_map:
        return compiled

    for key in FILTER_KEYS:
        value = filter_map.get(key)
        if _is_blank(value):
            continue

        if key == "domain":
            compiled.pre.add(key, Report.domain_id == _domain_id(value, resolve_domain))
        elif key == "month":
            start, end = month_bounds(value)
            compiled.pre.add(key, period_clause(start, end))
        elif key == "organization":
            compiled.pre.add(key, Report.org == str(value))
        elif key == "before_time":
            if not isinstance(value, datetime):
                raise ValidationError("Filter: before_time must be a timestamp")
            compiled.pre.add(key, Report.begin_time < as_utc_naive(value))
        elif key == "status":
            if value == "read":
                seen = True
            elif value == "unread":
                seen = False
            else:
                raise ValidationError("Filter: Incorrect status value")
            compiled.pre.add(key, Report.seen == literal(seen, Boolean()))
        elif key in ("dkim", "spf"):
            compiled.post.add(key, post_target[key] == _alignment_code(key, value))
        elif key == "disposition":
            compiled.post.add(key, post_target[key] == _disposition_code(value))

    return compiled
