from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ReportLogItem(BaseModel):
    id: Optional[int] = None
    user_id: int = 0
    domain: Optional[str] = None
    external_id: Optional[str] = None
    event_time: Optional[datetime] = None
    filename: Optional[str] = None
    source: int
    success: bool
    message: Optional[str] = None

    class Config:
        from_attributes = True
