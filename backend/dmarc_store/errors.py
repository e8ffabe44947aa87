from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError


class DmarcStoreError(Exception):
    """Base class for every error raised by the store."""


class ValidationError(DmarcStoreError):
    """Malformed filter or input value; the caller can correct it."""


class NotFoundError(DmarcStoreError):
    """Lookup miss."""


class ConflictError(DmarcStoreError):
    """The row being inserted already exists (e.g. a re-delivered report)."""


class SoftError(DmarcStoreError):
    """Business-rule rejection such as an inactive domain."""


class StorageFault(DmarcStoreError):
    """Failure of the underlying database. The driver error is kept in ``origin``."""

    def __init__(self, message: str, origin: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.origin = origin


class ConfigurationFault(DmarcStoreError):
    """The store cannot be brought to the requested state."""


# MySQL/MariaDB and PostgreSQL codes for rejected credentials
_ACCESS_DENIED_CODES = {1044, 1045, "28000", "28P01"}


def _driver_code(exc: DBAPIError) -> object:
    orig = exc.orig
    if orig is None:
        return None
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode:
        return pgcode
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def translate_db_error(message: str, exc: SQLAlchemyError) -> StorageFault:
    """Wrap a SQLAlchemy error into a StorageFault with a user-safe message.

    ``message`` describes the failed operation and ends up in the log context;
    the returned fault text never contains SQL.
    """
    if isinstance(exc, OperationalError):
        if _driver_code(exc) in _ACCESS_DENIED_CODES:
            text = "Database access denied"
        else:
            text = "Database connection error"
    elif isinstance(exc, InterfaceError):
        text = "Database connection error"
    else:
        text = "Database error"
    return StorageFault(f"{text}: {message}", origin=exc)
