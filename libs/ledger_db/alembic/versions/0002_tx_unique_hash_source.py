# ruff: noqa: I001
"""Add import provenance and duplicate-detection key to transactions.

Revision ID: 0002_tx_unique_hash_source
Revises: 0001_ledger_core
Create Date: 2025-10-14
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_tx_unique_hash_source"
down_revision: str | None = "0001_ledger_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    with op.batch_alter_table("transactions") as batch:
        batch.add_column(
            sa.Column("source", sa.String(16), nullable=False, server_default=sa.text("'manual'"))
        )
        batch.add_column(sa.Column("unique_hash", sa.Text(), nullable=True))
        batch.add_column(sa.Column("occurred_at", sa.DateTime(), nullable=True))
        batch.create_check_constraint(
            "ck_transactions_source",
            sa.text("source in ('manual','wechat','alipay','cmb','boc')"),
        )

    # Rows entered by hand carry no hash; only imported rows participate.
    op.create_index(
        "uq_transactions_owner_unique_hash",
        "transactions",
        ["owner_id", "unique_hash"],
        unique=True,
        postgresql_where=sa.text("unique_hash IS NOT NULL"),
        sqlite_where=sa.text("unique_hash IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_transactions_owner_unique_hash", table_name="transactions")
    with op.batch_alter_table("transactions") as batch:
        batch.drop_constraint("ck_transactions_source", type_="check")
        batch.drop_column("occurred_at")
        batch.drop_column("unique_hash")
        batch.drop_column("source")
