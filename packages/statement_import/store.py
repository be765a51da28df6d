# ruff: noqa: I001
"""Ledger store boundary.

The engine talks to the ledger only through :class:`LedgerStore`; every
operation is scoped by owner. :class:`SqlLedgerStore` implements it on the
``ledger_db`` SQLAlchemy models, one short transaction per call so that insert
chunks commit independently.

Two store-level guarantees the engine relies on:

- ``(owner_id, unique_hash)`` is unique among non-deleted rows; inserts that
  hit it are reported back as rejected positions instead of failing the chunk.
- :meth:`LedgerStore.apply_delta` is a single ``balance = balance + :delta``
  statement, so concurrent imports into one account cannot lose an update.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple, Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_db.client import session_scope
from ledger_db.models.ledger import LedgerAccount, LedgerCategory, LedgerTransaction

from .errors import StoreError
from .logging_setup import get_logger

logger = get_logger(__name__)

# Keeps IN (...) lists under SQLite's bound-parameter limit.
_IN_CHUNK = 500


# ---------------------------------------------------------------------------
# Boundary types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AccountRow:
    id: int
    name: str
    type: str
    balance: Decimal


@dataclass(frozen=True, slots=True)
class CategoryRow:
    id: int
    name: str
    type: str
    is_system: bool = False


@dataclass(frozen=True, slots=True)
class CategorySpec:
    name: str
    type: str
    icon: str | None = None
    color: str | None = None


@dataclass(frozen=True, slots=True)
class NewTransaction:
    account_id: int
    category_id: int
    amount: Decimal
    type: str
    date: date
    occurred_at: datetime | None
    description: str
    source: str
    unique_hash: str | None


@dataclass(frozen=True, slots=True)
class InsertOutcome:
    """IDs assigned to the accepted rows (input order) and the rejected input positions."""

    ids: tuple[int, ...]
    rejected: tuple[int, ...] = ()


class FieldKey(NamedTuple):
    """Pre-fingerprint duplicate key: calendar date, absolute amount in cents, description."""

    date: date
    cents: int
    description: str


def to_cents(amount: Decimal) -> int:
    return int((abs(amount) * 100).to_integral_value())


class LedgerStore(Protocol):
    def find_accounts_by_owner(self, owner_id: str) -> list[AccountRow]: ...

    def find_categories_by_owner(self, owner_id: str) -> list[CategoryRow]: ...

    def create_categories(
        self, owner_id: str, specs: Sequence[CategorySpec]
    ) -> list[CategoryRow]: ...

    def insert_transactions(
        self, owner_id: str, rows: Sequence[NewTransaction]
    ) -> InsertOutcome: ...

    def apply_delta(self, account_id: int, delta: Decimal) -> Decimal: ...

    def delete_transactions_by_ids(self, owner_id: str, ids: Sequence[int]) -> int: ...

    def count_category_references(
        self, owner_id: str, category_ids: Sequence[int]
    ) -> dict[int, int]: ...

    def delete_categories(self, owner_id: str, category_ids: Sequence[int]) -> int: ...

    def find_transactions_by_fingerprints(
        self, owner_id: str, fingerprints: Iterable[str]
    ) -> set[str]: ...

    def find_transactions_by_fields(
        self, owner_id: str, dates: Iterable[date]
    ) -> list[FieldKey]: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------


def _chunks[T](items: Sequence[T], size: int = _IN_CHUNK) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _to_model(owner_id: str, row: NewTransaction) -> LedgerTransaction:
    return LedgerTransaction(
        owner_id=owner_id,
        account_id=row.account_id,
        category_id=row.category_id,
        amount=row.amount,
        type=row.type,
        date=row.date,
        occurred_at=row.occurred_at,
        description=row.description,
        source=row.source,
        unique_hash=row.unique_hash,
    )


def _fingerprint_taken(session: Session, owner_id: str, unique_hash: str | None) -> bool:
    """True when a live row already holds ``unique_hash`` for this owner."""

    if unique_hash is None:
        return False
    found = session.scalar(
        select(LedgerTransaction.id)
        .where(
            LedgerTransaction.owner_id == owner_id,
            LedgerTransaction.unique_hash == unique_hash,
            LedgerTransaction.is_deleted.is_(False),
        )
        .limit(1)
    )
    return found is not None


class SqlLedgerStore:
    """:class:`LedgerStore` backed by ``ledger_db`` (``DATABASE_URL`` unless overridden)."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    @contextmanager
    def _scope(self, op: str) -> Iterator[Session]:
        try:
            with session_scope(database_url=self._database_url) as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreError(f"ledger store failed during {op}: {exc}") from exc

    # -- reference data --------------------------------------------------------

    def find_accounts_by_owner(self, owner_id: str) -> list[AccountRow]:
        with self._scope("find_accounts_by_owner") as session:
            rows = session.scalars(
                select(LedgerAccount)
                .where(LedgerAccount.owner_id == owner_id, LedgerAccount.is_deleted.is_(False))
                .order_by(LedgerAccount.created_at, LedgerAccount.id)
            ).all()
            return [AccountRow(id=a.id, name=a.name, type=a.type, balance=a.balance) for a in rows]

    def find_categories_by_owner(self, owner_id: str) -> list[CategoryRow]:
        with self._scope("find_categories_by_owner") as session:
            rows = session.scalars(
                select(LedgerCategory)
                .where(LedgerCategory.owner_id == owner_id, LedgerCategory.is_deleted.is_(False))
                .order_by(LedgerCategory.id)
            ).all()
            return [
                CategoryRow(id=c.id, name=c.name, type=c.type, is_system=c.is_system) for c in rows
            ]

    def create_categories(self, owner_id: str, specs: Sequence[CategorySpec]) -> list[CategoryRow]:
        if not specs:
            return []
        with self._scope("create_categories") as session:
            models = [
                LedgerCategory(
                    owner_id=owner_id,
                    name=s.name,
                    type=s.type,
                    icon=s.icon,
                    color=s.color,
                    is_system=False,
                )
                for s in specs
            ]
            session.add_all(models)
            session.flush()
            return [CategoryRow(id=m.id, name=m.name, type=m.type) for m in models]

    # -- transactions ----------------------------------------------------------

    def insert_transactions(self, owner_id: str, rows: Sequence[NewTransaction]) -> InsertOutcome:
        """Insert one chunk; rows hitting the fingerprint constraint are rejected, not fatal.

        Any other integrity failure (unknown account or category, a CHECK
        constraint) raises :class:`StoreError` and nothing from the chunk is kept.
        """

        if not rows:
            return InsertOutcome(ids=())
        with self._scope("insert_transactions") as session:
            try:
                with session.begin_nested():
                    models = [_to_model(owner_id, r) for r in rows]
                    session.add_all(models)
                    session.flush()
                return InsertOutcome(ids=tuple(m.id for m in models))
            except IntegrityError:
                # Retry row by row to tell fingerprint conflicts from other failures.
                logger.info("fingerprint conflict in chunk of %d; retrying per row", len(rows))

            ids: list[int] = []
            rejected: list[int] = []
            for pos, row in enumerate(rows):
                model = _to_model(owner_id, row)
                try:
                    with session.begin_nested():
                        session.add(model)
                        session.flush()
                except IntegrityError as exc:
                    if not _fingerprint_taken(session, owner_id, row.unique_hash):
                        raise StoreError(
                            f"ledger store rejected row {pos} of chunk: {exc.orig}"
                        ) from exc
                    rejected.append(pos)
                    continue
                ids.append(model.id)
            return InsertOutcome(ids=tuple(ids), rejected=tuple(rejected))

    def apply_delta(self, account_id: int, delta: Decimal) -> Decimal:
        with self._scope("apply_delta") as session:
            result = session.execute(
                update(LedgerAccount)
                .where(LedgerAccount.id == account_id)
                .values(balance=LedgerAccount.balance + delta, updated_at=func.now())
            )
            if result.rowcount == 0:
                raise StoreError(f"account {account_id} not found")
            balance = session.scalar(
                select(LedgerAccount.balance).where(LedgerAccount.id == account_id)
            )
            return Decimal(balance).quantize(Decimal("0.01"))

    def delete_transactions_by_ids(self, owner_id: str, ids: Sequence[int]) -> int:
        removed = 0
        with self._scope("delete_transactions_by_ids") as session:
            for part in _chunks(list(ids)):
                result = session.execute(
                    delete(LedgerTransaction).where(
                        LedgerTransaction.owner_id == owner_id,
                        LedgerTransaction.id.in_(part),
                    )
                )
                removed += result.rowcount or 0
        return removed

    # -- categories cleanup ----------------------------------------------------

    def count_category_references(
        self, owner_id: str, category_ids: Sequence[int]
    ) -> dict[int, int]:
        counts = {cid: 0 for cid in category_ids}
        if not counts:
            return counts
        with self._scope("count_category_references") as session:
            # Soft-deleted rows still hold the foreign key, so they count.
            for part in _chunks(list(counts)):
                stmt = (
                    select(LedgerTransaction.category_id, func.count())
                    .where(
                        LedgerTransaction.owner_id == owner_id,
                        LedgerTransaction.category_id.in_(part),
                    )
                    .group_by(LedgerTransaction.category_id)
                )
                for cid, n in session.execute(stmt):
                    counts[cid] = int(n)
        return counts

    def delete_categories(self, owner_id: str, category_ids: Sequence[int]) -> int:
        if not category_ids:
            return 0
        with self._scope("delete_categories") as session:
            result = session.execute(
                delete(LedgerCategory).where(
                    LedgerCategory.owner_id == owner_id,
                    LedgerCategory.id.in_(list(category_ids)),
                    LedgerCategory.is_system.is_(False),
                )
            )
            return result.rowcount or 0

    # -- duplicate lookups -----------------------------------------------------

    def find_transactions_by_fingerprints(
        self, owner_id: str, fingerprints: Iterable[str]
    ) -> set[str]:
        wanted = sorted(set(fingerprints))
        found: set[str] = set()
        if not wanted:
            return found
        with self._scope("find_transactions_by_fingerprints") as session:
            for part in _chunks(wanted):
                found.update(
                    session.scalars(
                        select(LedgerTransaction.unique_hash).where(
                            LedgerTransaction.owner_id == owner_id,
                            LedgerTransaction.is_deleted.is_(False),
                            LedgerTransaction.unique_hash.in_(part),
                        )
                    )
                )
        return found

    def find_transactions_by_fields(self, owner_id: str, dates: Iterable[date]) -> list[FieldKey]:
        wanted = sorted(set(dates))
        keys: list[FieldKey] = []
        if not wanted:
            return keys
        with self._scope("find_transactions_by_fields") as session:
            for part in _chunks(wanted):
                stmt = select(
                    LedgerTransaction.date,
                    LedgerTransaction.amount,
                    LedgerTransaction.description,
                ).where(
                    LedgerTransaction.owner_id == owner_id,
                    LedgerTransaction.is_deleted.is_(False),
                    LedgerTransaction.date.in_(part),
                )
                for d, amount, description in session.execute(stmt):
                    keys.append(FieldKey(d, to_cents(Decimal(amount)), description or ""))
        return keys


__all__ = [
    "AccountRow",
    "CategoryRow",
    "CategorySpec",
    "NewTransaction",
    "InsertOutcome",
    "FieldKey",
    "LedgerStore",
    "SqlLedgerStore",
    "to_cents",
]
