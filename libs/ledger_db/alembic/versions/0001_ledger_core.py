# ruff: noqa: I001
"""Ledger core tables: accounts, categories, transactions.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2025-10-10
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_Id = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # accounts
    op.create_table(
        "accounts",
        sa.Column("id", _Id, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("balance", sa.Numeric(15, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'CNY'")),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("color", sa.String(16), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint(
            "type in ('cash','bank','credit','alipay','wechat','other')",
            name="ck_accounts_type",
        ),
    )
    op.create_index("ix_accounts_owner_id", "accounts", ["owner_id"], unique=False)

    # categories
    op.create_table(
        "categories",
        sa.Column("id", _Id, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("color", sa.String(16), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("type in ('income','expense')", name="ck_categories_type"),
    )
    op.create_index("ix_categories_owner_id", "categories", ["owner_id"], unique=False)

    # transactions
    op.create_table(
        "transactions",
        sa.Column("id", _Id, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column(
            "account_id",
            _Id,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            _Id,
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "type in ('income','expense','transfer')",
            name="ck_transactions_type",
        ),
    )
    op.create_index("ix_transactions_owner_id", "transactions", ["owner_id"], unique=False)
    op.create_index("ix_transactions_account_id", "transactions", ["account_id"], unique=False)
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"], unique=False)
    op.create_index(
        "ix_transactions_duplicate_check",
        "transactions",
        ["owner_id", "date", "amount", "description"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_transactions_duplicate_check", table_name="transactions")
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_account_id", table_name="transactions")
    op.drop_index("ix_transactions_owner_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_categories_owner_id", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_accounts_owner_id", table_name="accounts")
    op.drop_table("accounts")
