from __future__ import annotations

from sqlalchemy import text

import dmarc_store.db.session as session


class DummySettings:
    def __init__(self, env="dev", runtime=None, test=None):
        self.ENV = env
        self.DATABASE_URL = runtime
        self.TEST_DATABASE_URL = test


def test_select_database_prefers_test_url():
    url = session._select_database_url(DummySettings(env="test", runtime="runtime-db", test="sqlite:///memory"))
    assert url == "sqlite:///memory"


def test_select_database_falls_back_to_runtime(monkeypatch):
    monkeypatch.delenv("PYTEST_CURRENT_TEST", raising=False)
    url = session._select_database_url(DummySettings(env="dev", runtime="postgresql://example", test=None))
    assert url == "postgresql://example"


def test_select_database_default(monkeypatch):
    monkeypatch.delenv("PYTEST_CURRENT_TEST", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert session._select_database_url(DummySettings()) == "sqlite:///dmarc_store.db"


def test_build_engine_sqlite_memory():
    engine = session._build_engine("sqlite:///:memory:")
    try:
        with engine.connect() as conn:
            result = conn.execute(text("SELECT 1")).scalar_one()
            assert result == 1
            assert conn.execute(text("PRAGMA foreign_keys")).scalar_one() == 1
    finally:
        engine.dispose()
