from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class TableState(BaseModel):
    name: str
    exists: bool
    rows: Optional[int] = None


class DatabaseState(BaseModel):
    tables: List[TableState]
    version: Optional[str] = None
    correct: bool
    needs_upgrade: bool
