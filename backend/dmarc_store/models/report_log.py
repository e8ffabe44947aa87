from sqlalchemy import Boolean, Column, DateTime, Index, Integer, SmallInteger, String, Text
from dmarc_store.db.base import Base


class ReportLogEntry(Base):
    """Append-only audit row for one ingestion attempt."""

    __tablename__ = "reportlog"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, default=0, server_default="0")
    domain = Column(String(255), nullable=True)
    external_id = Column(String(255), nullable=True)
    event_time = Column(DateTime, nullable=False)
    filename = Column(String(255), nullable=True)
    source = Column(SmallInteger, nullable=False)
    success = Column(Boolean, nullable=False)
    message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_reportlog_event_time", "event_time"),
        Index("ix_reportlog_user_id_event_time", "user_id", "event_time"),
    )
