"""system: widen key to 64 characters

Version: 1.0 -> 2.0
"""
from alembic.operations import Operations
import sqlalchemy as sa

from dmarc_store.migrations.helpers import write_version

from_version = "1.0"
to_version = "2.0"


def upgrade(op: Operations) -> None:
    bind = op.get_bind()
    # SQLite does not enforce VARCHAR lengths.
    if bind.dialect.name != "sqlite":
        op.alter_column(
            "system",
            "key",
            existing_type=sa.String(length=32),
            type_=sa.String(length=64),
            existing_nullable=False,
        )
    write_version(bind, to_version)
