from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# SQLite only autoincrements INTEGER PRIMARY KEY (rowid) columns.
_Id = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: accounts
# ---------------------------


class LedgerAccount(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(_Id, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    # Running total owned by the store; importers only ever add deltas to it.
    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, server_default=text("0")
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, server_default=text("'CNY'")
    )
    icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type in ('cash','bank','credit','alipay','wechat','other')",
            name="ck_accounts_type",
        ),
    )


# ---------------------------
# Reference: categories
# ---------------------------


class LedgerCategory(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(_Id, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # System categories are seeded per owner and never removed by import cleanup.
    is_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('income','expense')", name="ck_categories_type"),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(_Id, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(
        _Id, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[int] = mapped_column(
        _Id, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Signed: income positive, expense negative.
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    occurred_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'manual'")
    )
    # Duplicate-detection key written by importers (see statement_import.fingerprints).
    unique_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "type in ('income','expense','transfer')",
            name="ck_transactions_type",
        ),
        CheckConstraint(
            "source in ('manual','wechat','alipay','cmb','boc')",
            name="ck_transactions_source",
        ),
        # (owner, fingerprint) is unique among live rows; soft-deleted rows may
        # share a fingerprint with a re-imported one.
        Index(
            "uq_transactions_owner_unique_hash_active",
            "owner_id",
            "unique_hash",
            unique=True,
            postgresql_where=text("unique_hash IS NOT NULL AND NOT is_deleted"),
            sqlite_where=text("unique_hash IS NOT NULL AND NOT is_deleted"),
        ),
        Index("ix_transactions_duplicate_check", "owner_id", "date", "amount", "description"),
    )


__all__ = [
    "Base",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
]
