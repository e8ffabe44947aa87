from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dmarc_store.config import Settings, get_settings

logger = structlog.get_logger(__name__)


def _select_database_url(settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    env_name = (settings.ENV or "dev").lower()

    if env_name == "test" or os.getenv("PYTEST_CURRENT_TEST"):
        test_url = settings.TEST_DATABASE_URL or os.getenv("TEST_DATABASE_URL")
        if test_url:
            return test_url

    runtime_url = settings.DATABASE_URL or os.getenv("DATABASE_URL")
    if runtime_url:
        return runtime_url

    return "sqlite:///dmarc_store.db"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ANN001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:") or url.endswith(":memory:?cache=shared"):
            engine = create_engine(
                url,
                connect_args=connect_args,
                poolclass=StaticPool,
                future=True,
            )
        else:
            engine = create_engine(url, connect_args=connect_args, future=True)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(url, pool_pre_ping=True, future=True)


@lru_cache
def get_engine() -> Engine:
    url = _select_database_url()
    engine = _build_engine(url)
    logger.info("db.engine_created", url=make_url(url).render_as_string(hide_password=True))
    return engine


@lru_cache
def get_sessionmaker() -> sessionmaker[Session]:
    return sessionmaker(
        bind=get_engine(),
        autocommit=False,
        autoflush=False,
        future=True,
    )

