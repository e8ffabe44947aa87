"""domains: active flag, description and timestamps

Version: 0.1 -> 1.0
"""
from alembic.operations import Operations
import sqlalchemy as sa

from dmarc_store.migrations.helpers import column_names, write_version
from dmarc_store.utils.clock import utcnow

from_version = "0.1"
to_version = "1.0"


def upgrade(op: Operations) -> None:
    bind = op.get_bind()
    existing = column_names(bind, "domains")

    if "active" not in existing:
        op.add_column(
            "domains",
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.false()),
        )
    if "description" not in existing:
        op.add_column("domains", sa.Column("description", sa.Text(), nullable=True))
    if "created_time" not in existing:
        op.add_column("domains", sa.Column("created_time", sa.DateTime(), nullable=True))
    if "updated_time" not in existing:
        op.add_column("domains", sa.Column("updated_time", sa.DateTime(), nullable=True))

    # Domains that existed before this version were all in use.
    domains = sa.table(
        "domains",
        sa.column("active", sa.Boolean),
        sa.column("created_time", sa.DateTime),
        sa.column("updated_time", sa.DateTime),
    )
    now = utcnow()
    op.execute(
        domains.update()
        .where(domains.c.created_time.is_(None))
        .values(active=True, created_time=now, updated_time=now)
    )
    write_version(bind, to_version)
