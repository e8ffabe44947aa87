import pytest
from sqlalchemy import inspect

from _helpers import make_report
from dmarc_store.db.controller import DatabaseController
from dmarc_store.errors import SoftError
from dmarc_store.migrations.upgrader import REQUIRED_VERSION


def test_state_of_empty_database(fresh_engine):
    state = DatabaseController(fresh_engine).state()
    assert state.version is None
    assert state.correct is False
    assert state.needs_upgrade is True
    assert all(not t.exists for t in state.tables)


def test_init_db_creates_schema_and_version(fresh_engine):
    controller = DatabaseController(fresh_engine)
    controller.init_db()

    state = controller.state()
    assert state.correct is True
    assert state.version == REQUIRED_VERSION
    assert state.needs_upgrade is False
    rows = {t.name: t.rows for t in state.tables}
    assert rows["system"] == 1
    assert rows["reports"] == 0


def test_init_db_refuses_non_empty_database(fresh_engine):
    controller = DatabaseController(fresh_engine)
    controller.init_db()
    with pytest.raises(SoftError, match="not empty"):
        controller.init_db()


def test_clean_db_drops_store_tables(fresh_engine):
    controller = DatabaseController(fresh_engine)
    controller.init_db()
    controller.clean_db()
    assert inspect(fresh_engine).get_table_names() == []
    assert controller.state().version is None


def test_controller_through_unit_of_work(uow):
    uow.reports.save(make_report())
    controller = uow.mapper("database")
    state = controller.state()
    assert state.correct is True
    assert {t.name: t.rows for t in state.tables}["reports"] == 1
    assert state.needs_upgrade is True
