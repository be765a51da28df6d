"""Chunked commit and the compensating undo action.

:func:`commit_batch` inserts planned rows in fixed-size chunks, applies the net
signed delta to the target account once, and returns an :class:`UndoHandle`
built from exactly what was committed. Undo is an explicit inverse (delete by
ID, reverse the delta, drop auto-created categories left without references),
not a database rollback, so it stays valid for as long as the handle is held.

A failing chunk does not roll back earlier chunks: the delta for the committed
rows is applied and :class:`PartialCommitError` hands the caller an undo for
them. Rows the store rejects as already present are counted, not fatal.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from .errors import PartialCommitError, StoreError
from .logging_setup import get_logger
from .models import ParsedRecord
from .store import InsertOutcome, LedgerStore, NewTransaction

logger = get_logger(__name__)

_ZERO = Decimal("0.00")


@dataclass(frozen=True, slots=True)
class PlannedRow:
    record: ParsedRecord
    fingerprint: str
    category_id: int


@dataclass(frozen=True, slots=True)
class CommitOutcome:
    committed_ids: tuple[int, ...]
    rejected: int
    balance_delta: Decimal
    new_balance: Decimal | None
    undo: UndoHandle


class UndoHandle:
    """One-shot compensating action for a committed batch.

    Calling it returns True when this call finished reversing the batch and
    False when it had already been reversed. Concurrent callers serialize on a
    lock; each step is recorded, so a call interrupted by a store error can be
    retried without reversing the delta twice.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        owner_id: str,
        account_id: int | None,
        transaction_ids: Sequence[int],
        balance_delta: Decimal,
        created_category_ids: Sequence[int],
    ) -> None:
        self._store = store
        self.owner_id = owner_id
        self.account_id = account_id
        self.transaction_ids = tuple(transaction_ids)
        self.balance_delta = balance_delta
        self.created_category_ids = tuple(created_category_ids)
        self._lock = threading.Lock()
        self._rows_deleted = False
        self._delta_reversed = False
        self._done = False

    @property
    def used(self) -> bool:
        return self._done

    def __call__(self) -> bool:
        with self._lock:
            if self._done:
                return False
            if not self._rows_deleted:
                if self.transaction_ids:
                    removed = self._store.delete_transactions_by_ids(
                        self.owner_id, self.transaction_ids
                    )
                    logger.info("undo: deleted %d transaction(s)", removed)
                self._rows_deleted = True
            if not self._delta_reversed:
                if self.account_id is not None and self.balance_delta != 0:
                    self._store.apply_delta(self.account_id, -self.balance_delta)
                    logger.info("undo: reversed balance delta %s", self.balance_delta)
                self._delta_reversed = True
            if self.created_category_ids:
                refs = self._store.count_category_references(
                    self.owner_id, self.created_category_ids
                )
                unused = [cid for cid in self.created_category_ids if refs.get(cid, 0) == 0]
                if unused:
                    self._store.delete_categories(self.owner_id, unused)
                    logger.info("undo: removed %d unused categor(ies)", len(unused))
            self._done = True
            return True


def to_new_transaction(row: PlannedRow, account_id: int) -> NewTransaction:
    rec = row.record
    return NewTransaction(
        account_id=account_id,
        category_id=row.category_id,
        amount=rec.signed_amount,
        type=rec.direction.value,
        date=rec.date,
        occurred_at=rec.occurred_at,
        description=rec.description,
        source=rec.source_provider.value,
        unique_hash=row.fingerprint,
    )


def _accepted_delta(chunk: Sequence[PlannedRow], outcome: InsertOutcome) -> Decimal:
    rejected = set(outcome.rejected)
    return sum(
        (r.record.signed_amount for pos, r in enumerate(chunk) if pos not in rejected),
        _ZERO,
    )


def commit_batch(
    store: LedgerStore,
    *,
    owner_id: str,
    account_id: int,
    rows: Sequence[PlannedRow],
    created_category_ids: Sequence[int] = (),
    chunk_size: int = 500,
    filename: str | None = None,
) -> CommitOutcome:
    """Insert ``rows`` into ``account_id`` and apply their net delta.

    Raises
    ------
    PartialCommitError
        A chunk insert (or the balance update) failed. ``committed_ids`` and
        ``undo`` describe what is already in the ledger.
    """

    committed: list[int] = []
    rejected = 0
    delta = _ZERO
    chunk_count = (len(rows) + chunk_size - 1) // chunk_size

    def _undo(applied_delta: Decimal) -> UndoHandle:
        return UndoHandle(
            store,
            owner_id=owner_id,
            account_id=account_id,
            transaction_ids=committed,
            balance_delta=applied_delta,
            created_category_ids=created_category_ids,
        )

    for n, start in enumerate(range(0, len(rows), chunk_size)):
        chunk = rows[start : start + chunk_size]
        payload = [to_new_transaction(r, account_id) for r in chunk]
        try:
            outcome = store.insert_transactions(owner_id, payload)
        except StoreError as exc:
            applied = _ZERO
            if committed and delta != 0:
                try:
                    store.apply_delta(account_id, delta)
                    applied = delta
                except StoreError:
                    logger.exception("balance update after partial commit failed")
            logger.error(
                "chunk %d/%d failed after %d committed row(s)", n + 1, chunk_count, len(committed)
            )
            raise PartialCommitError(
                f"chunk {n + 1} of {chunk_count} failed; {n} chunk(s) already committed",
                chunks_committed=n,
                committed_ids=committed,
                undo=_undo(applied),
                filename=filename,
            ) from exc
        committed.extend(outcome.ids)
        rejected += len(outcome.rejected)
        delta += _accepted_delta(chunk, outcome)
        logger.info(
            "chunk %d/%d committed: %d row(s), %d already present",
            n + 1,
            chunk_count,
            len(outcome.ids),
            len(outcome.rejected),
        )

    new_balance: Decimal | None = None
    if delta != 0:
        try:
            new_balance = store.apply_delta(account_id, delta)
        except StoreError as exc:
            raise PartialCommitError(
                "rows committed but the account balance could not be updated",
                chunks_committed=chunk_count,
                committed_ids=committed,
                undo=_undo(_ZERO),
                filename=filename,
            ) from exc
        logger.info("account %s balance %+.2f -> %s", account_id, delta, new_balance)

    return CommitOutcome(
        committed_ids=tuple(committed),
        rejected=rejected,
        balance_delta=delta,
        new_balance=new_balance,
        undo=_undo(delta),
    )


__all__ = ["PlannedRow", "CommitOutcome", "UndoHandle", "to_new_transaction", "commit_batch"]
