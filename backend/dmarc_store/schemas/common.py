from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

DirectionLiteral = Literal["ascent", "descent"]


class _LabeledEnum(IntEnum):
    """Integer code stored in the database, lower-case label everywhere else."""

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str):
        try:
            return cls[label.upper()]
        except (KeyError, AttributeError) as ex:
            raise ValueError(f"Unknown {cls.__name__.lower()} value: {label!r}") from ex

    @classmethod
    def label_of(cls, code: Optional[int]) -> Optional[str]:
        if code is None:
            return None
        return cls(int(code)).label


class Alignment(_LabeledEnum):
    FAIL = 0
    UNKNOWN = 1
    PASS = 2


class Disposition(_LabeledEnum):
    # Ordered from the strictest action, so MIN() yields the worst one.
    REJECT = 0
    QUARANTINE = 1
    NONE = 2


class ReportLogSource(_LabeledEnum):
    UPLOADED_FILE = 1
    EMAIL = 2
    DIRECTORY = 3
    REMOTEFS = 4


class SortSpec(BaseModel):
    field: str = "begin_time"
    direction: DirectionLiteral = "descent"

    @property
    def descending(self) -> bool:
        return self.direction == "descent"


class PageSpec(BaseModel):
    """offset/count window; count 0 means no limit."""

    offset: int = Field(0, ge=0)
    count: int = Field(0, ge=0)


class DateRange(BaseModel):
    date1: datetime
    date2: datetime

    @model_validator(mode="after")
    def _check_order(self):
        if self.date2 < self.date1:
            raise ValueError("date2 must not be earlier than date1")
        return self
