from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, PrimaryKeyConstraint,
    String, Text, UniqueConstraint,
)
from dmarc_store.db.base import Base


class Domain(Base):
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True)
    fqdn = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    created_time = Column(DateTime, nullable=False)
    updated_time = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("fqdn", name="uq_domains_fqdn"),
    )


class UserDomain(Base):
    __tablename__ = "userdomains"

    domain_id = Column(Integer, ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("domain_id", "user_id", name="pk_userdomains"),
    )
