"""users, userdomains; per-user settings and report log

Version: 3.2 -> 4.0
"""
from alembic.operations import Operations
import sqlalchemy as sa

from dmarc_store.migrations.helpers import SYSTEM_COPY, column_names, index_names, write_version

from_version = "3.2"
to_version = "4.0"


def _relocate_system_pk(op: Operations, bind) -> None:  # noqa: ANN001
    """Rebuild ``system`` with primary key (user_id, key)."""
    insp = sa.inspect(bind)
    if insp.has_table(SYSTEM_COPY):
        op.drop_table(SYSTEM_COPY)
    has_user = "user_id" in column_names(bind, "system")

    system_new = op.create_table(
        SYSTEM_COPY,
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("value", sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint("user_id", "key", name="pk_system"),
    )
    old_cols = [sa.column("key", sa.String), sa.column("value", sa.String)]
    if has_user:
        old_cols.append(sa.column("user_id", sa.Integer))
    old = sa.table("system", *old_cols)
    user_expr = old.c.user_id if has_user else sa.literal(0, sa.Integer)
    op.execute(
        system_new.insert().from_select(
            ["key", "user_id", "value"],
            sa.select(old.c.key, user_expr, old.c.value),
        )
    )
    op.drop_table("system")
    op.rename_table(SYSTEM_COPY, "system")


def upgrade(op: Operations) -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("system") and insp.has_table(SYSTEM_COPY):
        # a previous run dropped system but never renamed the rebuilt copy
        op.rename_table(SYSTEM_COPY, "system")
        insp = sa.inspect(bind)

    if not insp.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=32), nullable=False),
            sa.Column("level", sa.SmallInteger(), nullable=False, server_default="0"),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("email", sa.String(length=64), nullable=True),
            sa.Column("created_time", sa.DateTime(), nullable=False),
            sa.Column("updated_time", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("name", name="uq_users_name"),
        )
    if not insp.has_table("userdomains"):
        op.create_table(
            "userdomains",
            sa.Column("domain_id", sa.Integer(), sa.ForeignKey("domains.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("domain_id", "user_id", name="pk_userdomains"),
        )

    pk_cols = insp.get_pk_constraint("system").get("constrained_columns") or []
    if list(pk_cols) != ["user_id", "key"]:
        _relocate_system_pk(op, bind)

    if "user_id" not in column_names(bind, "reportlog"):
        op.add_column(
            "reportlog",
            sa.Column("user_id", sa.Integer(), nullable=False, server_default="0"),
        )
    if "ix_reportlog_user_id_event_time" not in index_names(bind, "reportlog"):
        op.create_index("ix_reportlog_user_id_event_time", "reportlog", ["user_id", "event_time"])

    write_version(bind, to_version)
