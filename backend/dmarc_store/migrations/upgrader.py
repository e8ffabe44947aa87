from __future__ import annotations

from types import ModuleType
from typing import TYPE_CHECKING, List, Optional, Union

import structlog
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from dmarc_store.errors import ConfigurationFault, translate_db_error
from dmarc_store.migrations.helpers import read_version
from dmarc_store.migrations.versions import STEPS
from dmarc_store.observability.instrument import log_job
from dmarc_store.observability.metrics import MIGRATION_STEPS

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)

REQUIRED_VERSION = "4.0"


def step_name(step: ModuleType) -> str:
    return step.__name__.rsplit(".", 1)[-1]


def plan(current: Optional[str], target: str) -> List[ModuleType]:
    """Transitions leading from ``current`` to ``target``, in order."""
    by_source = {step.from_version: step for step in STEPS}
    path: List[ModuleType] = []
    version = current
    while version != target:
        step = by_source.get(version)
        if step is None or step in path:
            raise ConfigurationFault(
                f"There is no way to upgrade from {current or 'null'} to {target}"
            )
        path.append(step)
        version = step.to_version
    return path


class Migrator:
    """
    Brings a store from its persisted schema version to a target version.

    Every transition runs in a connection transaction of its own and leaves
    its successor version behind, so an interrupted upgrade resumes from the
    last completed step when run again.
    """

    def __init__(self, source: Union["UnitOfWork", Engine]) -> None:
        if isinstance(source, Engine):
            self.uow = None
            self.engine = source
        else:
            self.uow = source
            self.engine = source.session.get_bind()

    def current_version(self) -> Optional[str]:
        try:
            with self.engine.connect() as conn:
                return read_version(conn)
        except SQLAlchemyError as ex:
            raise translate_db_error("Failed to read the database version", ex) from ex

    def _run(self, step: ModuleType) -> str:
        name = step_name(step)

        @log_job(f"migrator.{name}")
        def apply() -> str:
            with self.engine.begin() as conn:
                step.upgrade(Operations(MigrationContext.configure(conn)))
            return step.to_version

        try:
            version = apply()
        except SQLAlchemyError as ex:
            raise translate_db_error(f"Failed to upgrade the database ({name})", ex) from ex
        MIGRATION_STEPS.labels(step=name).inc()
        logger.info("migrator.step_applied", step=name, version=version)
        return version

    def upgrade(self, target: str = REQUIRED_VERSION) -> List[str]:
        """Apply the missing transitions and return their names.

        Called through a unit of work, its open transaction is committed first
        and unflushed changes raise SoftError.
        """
        if self.uow is not None:
            # The session must not hold a transaction open across DDL.
            self.uow.release()
        current = self.current_version()
        steps = plan(current, target)
        if not steps:
            logger.info("migrator.up_to_date", version=current)
            return []

        logger.info("migrator.upgrade_started", current=current, target=target, steps=len(steps))
        applied: List[str] = []
        for step in steps:
            self._run(step)
            applied.append(step_name(step))
        if self.uow is not None:
            self.uow.session.expire_all()
        logger.info("migrator.upgrade_finished", version=target, applied=applied)
        return applied
