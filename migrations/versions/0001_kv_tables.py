"""key-value tables

Tables behind the SQL job store backend. init_db() creates the same schema
with SQLModel.metadata.create_all on startup, so this migration is a no-op
on databases that already have them.

"""
from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel  # noqa: F401
from alembic import op


revision: str = "0001_kv_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    existing = set(sa.inspect(op.get_bind()).get_table_names())
    if "kv_entry" not in existing:
        op.create_table(
            "kv_entry",
            sa.Column("key", sa.String(length=255), primary_key=True),
            sa.Column("value", sa.String(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )
    if "kv_set_member" not in existing:
        op.create_table(
            "kv_set_member",
            sa.Column("key", sa.String(length=255), primary_key=True),
            sa.Column("member", sa.String(length=255), primary_key=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )


def downgrade() -> None:
    # Job data lives in these tables; dropping them is never done automatically
    pass
