"""stamp an unversioned store

Version: <none> -> 0.1
"""
from alembic.operations import Operations
import sqlalchemy as sa

from dmarc_store.migrations.helpers import write_version

from_version = None
to_version = "0.1"


def upgrade(op: Operations) -> None:
    bind = op.get_bind()
    if not sa.inspect(bind).has_table("system"):
        op.create_table(
            "system",
            sa.Column("key", sa.String(length=32), primary_key=True, nullable=False),
            sa.Column("value", sa.String(length=255), nullable=True),
        )
    write_version(bind, to_version)
