from __future__ import annotations

from typing import TYPE_CHECKING, List, Union

import structlog
from sqlalchemy import func, inspect, select, table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dmarc_store.db.base import Base
from dmarc_store.errors import SoftError, translate_db_error
from dmarc_store.migrations.helpers import read_version, write_version
from dmarc_store.migrations.upgrader import REQUIRED_VERSION
from dmarc_store.schemas.database import DatabaseState, TableState

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)


class DatabaseController:
    """Whole-store administration: inspect, create and drop the schema."""

    def __init__(self, source: Union["UnitOfWork", Engine]) -> None:
        if isinstance(source, Engine):
            self.uow = None
            self.engine = source
        else:
            self.uow = source
            self.engine = source.session.get_bind()

    @staticmethod
    def table_names() -> List[str]:
        return [t.name for t in Base.metadata.sorted_tables]

    def _release_session(self) -> None:
        if self.uow is not None:
            self.uow.release()

    def state(self) -> DatabaseState:
        self._release_session()
        try:
            with self.engine.connect() as conn:
                present = set(inspect(conn).get_table_names())
                tables = []
                for name in self.table_names():
                    if name in present:
                        rows = conn.execute(select(func.count()).select_from(table(name))).scalar_one()
                        tables.append(TableState(name=name, exists=True, rows=int(rows)))
                    else:
                        tables.append(TableState(name=name, exists=False))
                version = read_version(conn)
        except SQLAlchemyError as ex:
            raise translate_db_error("Failed to get the database state", ex) from ex

        return DatabaseState(
            tables=tables,
            version=version,
            correct=all(t.exists for t in tables),
            needs_upgrade=version != REQUIRED_VERSION,
        )

    def init_db(self) -> None:
        """Create every store table and stamp the current version.

        Called through a unit of work, its open transaction is committed first.
        """
        self._release_session()
        try:
            with self.engine.begin() as conn:
                present = set(inspect(conn).get_table_names())
                if present.intersection(self.table_names()):
                    raise SoftError("The database is not empty")
                Base.metadata.create_all(bind=conn)
                write_version(conn, REQUIRED_VERSION)
        except SQLAlchemyError as ex:
            raise translate_db_error("Failed to create the database tables", ex) from ex
        logger.info("db.initialized", version=REQUIRED_VERSION)

    def clean_db(self) -> None:
        self._release_session()
        try:
            with self.engine.begin() as conn:
                Base.metadata.drop_all(bind=conn)
        except SQLAlchemyError as ex:
            raise translate_db_error("Failed to drop the database tables", ex) from ex
        if self.uow is not None:
            self.uow.session.expunge_all()
        logger.info("db.cleaned")
