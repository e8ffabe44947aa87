from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

from sqlalchemy import select

from dmarc_store.errors import NotFoundError, ValidationError
from dmarc_store.models import SystemSetting

if TYPE_CHECKING:
    from dmarc_store.db.unit_of_work import UnitOfWork


class SettingRepository:
    """Key/value settings. user_id 0 is the global scope."""

    def __init__(self, uow: "UnitOfWork") -> None:
        self.uow = uow

    def _row(self, key: str, user_id: int) -> Optional[SystemSetting]:
        return self.uow.session.get(SystemSetting, {"user_id": user_id, "key": key})

    def value(self, key: str, user_id: int = 0) -> str:
        with self.uow.guard("Failed to get a setting value"):
            row = self._row(key, user_id)
        if row is None:
            raise NotFoundError("Setting not found: " + key)
        return row.value

    def get(self, key: str, user_id: int = 0, default: Optional[str] = None) -> Optional[str]:
        """User value, then the global one, then ``default``."""
        scopes = (user_id, 0) if user_id else (0,)
        with self.uow.guard("Failed to get a setting value"):
            for scope in scopes:
                row = self._row(key, scope)
                if row is not None:
                    return row.value
        return default

    def list(self, user_id: int = 0) -> Dict[str, str]:
        stmt = (
            select(SystemSetting.key, SystemSetting.value)
            .where(SystemSetting.user_id == user_id)
            .order_by(SystemSetting.key)
        )
        with self.uow.guard("Failed to get a list of the settings") as db:
            return {key: value for key, value in db.execute(stmt)}

    def save(self, key: str, value: str, user_id: int = 0) -> None:
        if not key or len(key) > 64:
            raise ValidationError("Incorrect setting name")
        with self.uow.transaction("Failed to update a setting value") as db:
            row = self._row(key, user_id)
            if row is None:
                db.add(SystemSetting(key=key, user_id=user_id, value=value))
            else:
                row.value = value
            db.flush()
