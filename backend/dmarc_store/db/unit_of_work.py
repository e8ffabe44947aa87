from __future__ import annotations

from contextlib import contextmanager
from importlib import import_module
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dmarc_store.config import Settings, get_settings
from dmarc_store.db.session import get_sessionmaker
from dmarc_store.errors import DmarcStoreError, SoftError, translate_db_error
from dmarc_store.services.provisioning import DomainAllowList

logger = structlog.get_logger(__name__)

# mapper name -> (module, class)
_MAPPERS: Dict[str, Tuple[str, str]] = {
    "domain": ("dmarc_store.repositories.domain", "DomainRepository"),
    "host": ("dmarc_store.repositories.host", "HostRepository"),
    "report": ("dmarc_store.repositories.report", "ReportRepository"),
    "report-log": ("dmarc_store.repositories.report_log", "ReportLogRepository"),
    "setting": ("dmarc_store.repositories.setting", "SettingRepository"),
    "statistics": ("dmarc_store.repositories.statistics", "StatisticsRepository"),
    "database": ("dmarc_store.db.controller", "DatabaseController"),
    "upgrader": ("dmarc_store.migrations.upgrader", "Migrator"),
}


class UnitOfWork:
    """
    Owns one Session for the duration of a logical operation.

    Repositories are obtained by name through ``mapper()`` and all receive this
    object, never a bare connection. Writes go through ``transaction()``:

        with UnitOfWork() as uow:
            uow.mapper("report").save(report)

    Leaving the ``with`` block commits; an exception rolls back.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        *,
        settings: Optional[Settings] = None,
        allow_list: Optional[DomainAllowList] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory or get_sessionmaker()
        self.allow_list = allow_list or DomainAllowList(self.settings.ALLOWED_DOMAINS)
        self._session: Optional[Session] = None
        self._mappers: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self.close()

    def commit(self) -> None:
        if self._session is None:
            return
        try:
            self._session.commit()
        except SQLAlchemyError as ex:
            self._session.rollback()
            raise translate_db_error("Failed to commit the transaction", ex) from ex

    def release(self) -> None:
        """
        Commit the open transaction before the caller works on the engine directly.

        Flushed work is committed along with it. Objects still waiting to be
        flushed are refused with SoftError, nothing is committed then.
        """
        if self._session is None:
            return
        db = self._session
        if db.new or db.dirty or db.deleted:
            raise SoftError("The unit of work has unsaved changes")
        self.commit()

    def rollback(self) -> None:
        if self._session is not None:
            self._session.rollback()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
        self._mappers.clear()

    @contextmanager
    def transaction(self, action: str = "database operation") -> Iterator[Session]:
        """Run the block atomically; nests as a SAVEPOINT inside an open transaction.

        Driver errors leave the block as StorageFault; store errors pass through
        unchanged. Either way the work done inside the block is rolled back.
        """
        db = self.session
        trans_ctx = db.begin_nested() if db.in_transaction() else db.begin()
        try:
            with trans_ctx:
                yield db
        except DmarcStoreError:
            raise
        except SQLAlchemyError as ex:
            logger.warning("uow.transaction_failed", action=action, error=type(ex).__name__)
            raise translate_db_error(action, ex) from ex

    @contextmanager
    def guard(self, action: str) -> Iterator[Session]:
        """Translate driver errors raised by read-only queries."""
        try:
            yield self.session
        except SQLAlchemyError as ex:
            logger.warning("uow.query_failed", action=action, error=type(ex).__name__)
            raise translate_db_error(action, ex) from ex

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def mapper(self, name: str) -> Any:
        if name not in self._mappers:
            try:
                module_name, class_name = _MAPPERS[name]
            except KeyError:
                raise LookupError(f"Unknown mapper name: {name}") from None
            cls = getattr(import_module(module_name), class_name)
            self._mappers[name] = cls(self)
        return self._mappers[name]

    @property
    def domains(self):
        return self.mapper("domain")

    @property
    def reports(self):
        return self.mapper("report")

    @property
    def report_log(self):
        return self.mapper("report-log")

    @property
    def settings_store(self):
        return self.mapper("setting")

    @property
    def statistics(self):
        return self.mapper("statistics")

    @property
    def hosts(self):
        return self.mapper("host")
