"""reports: drop duplicate reports, make the fingerprint index unique

Version: 3.1 -> 3.2

Of every group of reports sharing (domain_id, begin_time, org, external_id)
the one with the smallest id is kept; the others go with their records.
"""
from alembic.operations import Operations
import sqlalchemy as sa
import structlog

from dmarc_store.migrations.helpers import index_names, write_version
from dmarc_store.utils.batching import chunked

logger = structlog.get_logger(__name__)

from_version = "3.1"
to_version = "3.2"


def upgrade(op: Operations) -> None:
    bind = op.get_bind()

    reports = sa.table(
        "reports",
        sa.column("id", sa.Integer),
        sa.column("domain_id", sa.Integer),
        sa.column("begin_time", sa.DateTime),
        sa.column("org", sa.String),
        sa.column("external_id", sa.String),
    )
    rptrecords = sa.table("rptrecords", sa.column("report_id", sa.Integer))

    keep = sa.select(sa.func.min(reports.c.id)).group_by(
        reports.c.domain_id, reports.c.begin_time, reports.c.org, reports.c.external_id
    )
    duplicates = list(
        bind.execute(
            sa.select(reports.c.id).where(reports.c.id.not_in(keep)).order_by(reports.c.id)
        ).scalars()
    )
    for chunk in chunked(duplicates):
        op.execute(rptrecords.delete().where(rptrecords.c.report_id.in_(chunk)))
        op.execute(reports.delete().where(reports.c.id.in_(chunk)))
    if duplicates:
        logger.info("migrator.duplicates_removed", count=len(duplicates))

    existing = index_names(bind, "reports")
    if "org_time_id_u" not in existing:
        op.create_index(
            "org_time_id_u",
            "reports",
            ["domain_id", "begin_time", "org", "external_id"],
            unique=True,
        )
    if "org_time_id" in existing:
        op.drop_index("org_time_id", table_name="reports")
    write_version(bind, to_version)
