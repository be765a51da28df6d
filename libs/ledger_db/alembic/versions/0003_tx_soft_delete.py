# ruff: noqa: I001
"""Soft delete for transactions and categories; scope hash uniqueness to live rows.

Revision ID: 0003_tx_soft_delete
Revises: 0002_tx_unique_hash_source
Create Date: 2025-10-21
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0003_tx_soft_delete"
down_revision: str | None = "0002_tx_unique_hash_source"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "transactions",
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.add_column(
        "categories",
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    # A soft-deleted row must not block re-importing the same statement line.
    op.drop_index("uq_transactions_owner_unique_hash", table_name="transactions")
    op.create_index(
        "uq_transactions_owner_unique_hash_active",
        "transactions",
        ["owner_id", "unique_hash"],
        unique=True,
        postgresql_where=sa.text("unique_hash IS NOT NULL AND NOT is_deleted"),
        sqlite_where=sa.text("unique_hash IS NOT NULL AND NOT is_deleted"),
    )


def downgrade() -> None:
    op.drop_index("uq_transactions_owner_unique_hash_active", table_name="transactions")
    op.create_index(
        "uq_transactions_owner_unique_hash",
        "transactions",
        ["owner_id", "unique_hash"],
        unique=True,
        postgresql_where=sa.text("unique_hash IS NOT NULL"),
        sqlite_where=sa.text("unique_hash IS NOT NULL"),
    )
    with op.batch_alter_table("categories") as batch:
        batch.drop_column("is_deleted")
    with op.batch_alter_table("transactions") as batch:
        batch.drop_column("is_deleted")
