from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, SmallInteger, String, UniqueConstraint
from dmarc_store.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(32), nullable=False)
    level = Column(SmallInteger, nullable=False, default=0)
    enabled = Column(Boolean, nullable=False, default=False)
    email = Column(String(64), nullable=True)
    created_time = Column(DateTime, nullable=False)
    updated_time = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("name", name="uq_users_name"),
    )
