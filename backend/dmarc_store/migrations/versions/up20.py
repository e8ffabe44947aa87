"""reports: policy_np column

Version: 2.0 -> 3.0
"""
from alembic.operations import Operations
import sqlalchemy as sa

from dmarc_store.migrations.helpers import column_names, write_version

from_version = "2.0"
to_version = "3.0"


def upgrade(op: Operations) -> None:
    bind = op.get_bind()
    if "policy_np" not in column_names(bind, "reports"):
        op.add_column("reports", sa.Column("policy_np", sa.String(length=20), nullable=True))
    write_version(bind, to_version)
