import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

# Ensure backend/ is importable as the top-level "dmarc_store" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure the store runs in test/sqlite mode *before* importing any store modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ALLOWED_DOMAINS", "")

from dmarc_store.config import Settings
from dmarc_store.db.base import Base
from dmarc_store.db.session import _build_engine
from dmarc_store.db.unit_of_work import UnitOfWork

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = _build_engine("sqlite://")
SessionTesting = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False, future=True)


def _drop_everything(conn):
    Base.metadata.drop_all(bind=conn)
    tables = conn.execute(text(
        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
    )).scalars().all()
    for t in tables:
        conn.execute(text(f'DROP TABLE IF EXISTS "{t}"'))


@pytest.fixture(scope="session")
def _db_engine():
    yield ENGINE


@pytest.fixture(scope="session")
def _session_factory(_db_engine):
    yield SessionTesting


@pytest.fixture(scope="function")
def reset_db(_db_engine):
    with _db_engine.begin() as conn:
        _drop_everything(conn)
        Base.metadata.create_all(bind=conn)
    yield
    with _db_engine.begin() as conn:
        _drop_everything(conn)


@pytest.fixture(scope="function")
def settings():
    return Settings(ENV="test", DATABASE_URL="sqlite://", ALLOWED_DOMAINS="")


@pytest.fixture(scope="function")
def make_uow(_session_factory, reset_db, settings):
    """Factory for extra units of work over the same database (e.g. other settings)."""
    opened = []

    def _make(**overrides):
        uow = UnitOfWork(
            _session_factory,
            settings=settings.model_copy(update=overrides) if overrides else settings,
        )
        opened.append(uow)
        return uow

    yield _make
    for uow in opened:
        uow.rollback()
        uow.close()


@pytest.fixture(scope="function")
def uow(make_uow):
    yield make_uow()


@pytest.fixture(scope="function")
def db(uow):
    yield uow.session


@pytest.fixture(scope="function")
def fresh_engine():
    """A private, empty in-memory database."""
    engine = _build_engine("sqlite://")
    try:
        yield engine
    finally:
        engine.dispose()
