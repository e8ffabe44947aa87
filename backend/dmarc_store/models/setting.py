from sqlalchemy import Column, Integer, String, PrimaryKeyConstraint
from dmarc_store.db.base import Base


class SystemSetting(Base):
    """Key/value settings; user_id 0 holds the global ones (including the schema version)."""

    __tablename__ = "system"

    key = Column(String(64), nullable=False)
    user_id = Column(Integer, nullable=False, default=0, server_default="0")
    value = Column(String(255), nullable=True)

    __table_args__ = (
        PrimaryKeyConstraint("user_id", "key", name="pk_system"),
    )
