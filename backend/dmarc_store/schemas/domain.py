from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class DomainData(BaseModel):
    id: Optional[int] = None
    fqdn: str
    active: bool = False
    description: Optional[str] = None
    created_time: Optional[datetime] = None
    updated_time: Optional[datetime] = None

    @field_validator("fqdn")
    @classmethod
    def _normalize_fqdn(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("fqdn must not be empty")
        return value

    class Config:
        from_attributes = True
