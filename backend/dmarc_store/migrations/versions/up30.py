"""reports: fingerprint index replaces the external_id index

Version: 3.0 -> 3.1
"""
from alembic.operations import Operations

from dmarc_store.migrations.helpers import index_names, write_version

from_version = "3.0"
to_version = "3.1"


def upgrade(op: Operations) -> None:
    bind = op.get_bind()
    existing = index_names(bind, "reports")

    if "org_time_id" not in existing and "org_time_id_u" not in existing:
        op.create_index("org_time_id", "reports", ["domain_id", "begin_time", "org", "external_id"])
    if "external_id" in existing:
        op.drop_index("external_id", table_name="reports")
    write_version(bind, to_version)
