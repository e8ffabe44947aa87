from __future__ import annotations

from typing import Optional, Set

import sqlalchemy as sa
from sqlalchemy.engine import Connection

VERSION_KEY = "version"
SYSTEM_COPY = "system_new"


def column_names(bind: Connection, table: str) -> Set[str]:
    return {col["name"] for col in sa.inspect(bind).get_columns(table)}


def index_names(bind: Connection, table: str) -> Set[str]:
    insp = sa.inspect(bind)
    names = {ix["name"] for ix in insp.get_indexes(table)}
    names |= {uc["name"] for uc in insp.get_unique_constraints(table) if uc.get("name")}
    return names


def _system_table(bind: Connection, name: str = "system") -> sa.TableClause:
    cols = [sa.column("key", sa.String), sa.column("value", sa.String)]
    if "user_id" in column_names(bind, name):
        cols.append(sa.column("user_id", sa.Integer))
    return sa.table(name, *cols)


def read_version(bind: Connection) -> Optional[str]:
    """Persisted schema version; None when the store predates versioning.

    A store caught between dropping ``system`` and renaming its rebuilt copy
    reports the version held by the copy.
    """
    insp = sa.inspect(bind)
    if insp.has_table("system"):
        system = _system_table(bind)
    elif insp.has_table(SYSTEM_COPY):
        system = _system_table(bind, SYSTEM_COPY)
    else:
        return None
    stmt = sa.select(system.c.value).where(system.c.key == VERSION_KEY)
    if "user_id" in system.c:
        stmt = stmt.where(system.c.user_id == 0)
    return bind.execute(stmt).scalar_one_or_none()


def write_version(bind: Connection, version: str) -> None:
    system = _system_table(bind)
    has_user = "user_id" in system.c
    cond = system.c.key == VERSION_KEY
    if has_user:
        cond = sa.and_(cond, system.c.user_id == 0)
    res = bind.execute(sa.update(system).where(cond).values(value=version))
    if res.rowcount == 0:
        values = {"key": VERSION_KEY, "value": version}
        if has_user:
            values["user_id"] = 0
        bind.execute(sa.insert(system).values(**values))
