"""Duplicate filtering against the batch itself and the owner's ledger.

A record is dropped when any of these checks matches, evaluated in order:

``in_batch``
    An earlier record in the same file has the same current fingerprint
    (first occurrence wins).
``fingerprint``
    A live ledger row carries the record's fingerprint under any generation.
``fields``
    A live ledger row has the same date, absolute amount and description
    (rows imported before fingerprints existed).

The counts per reason are reported; ``store_conflict`` is added later by the
commit step when the store's uniqueness constraint rejects a row.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from .fingerprints import all_fingerprints, current_fingerprint, field_key
from .logging_setup import get_logger
from .models import ParsedRecord
from .store import LedgerStore

logger = get_logger(__name__)

REASON_IN_BATCH = "in_batch"
REASON_FINGERPRINT = "fingerprint"
REASON_FIELDS = "fields"
REASON_STORE_CONFLICT = "store_conflict"


@dataclass(frozen=True, slots=True)
class DedupResult:
    """Survivors in input order, with their current-generation fingerprints."""

    survivors: tuple[ParsedRecord, ...]
    fingerprints: tuple[str, ...]
    reasons: dict[str, int] = field(default_factory=dict)

    @property
    def dropped(self) -> int:
        return sum(self.reasons.values())


def deduplicate(store: LedgerStore, owner_id: str, records: Sequence[ParsedRecord]) -> DedupResult:
    reasons: Counter[str] = Counter()

    seen: set[str] = set()
    batch: list[tuple[ParsedRecord, str]] = []
    for rec in records:
        fp = current_fingerprint(rec)
        if fp in seen:
            reasons[REASON_IN_BATCH] += 1
            continue
        seen.add(fp)
        batch.append((rec, fp))

    keys = {key for rec, _ in batch for key in all_fingerprints(rec)}
    existing = store.find_transactions_by_fingerprints(owner_id, keys) if keys else set()
    after_fp: list[tuple[ParsedRecord, str]] = []
    for rec, fp in batch:
        if any(key in existing for key in all_fingerprints(rec)):
            reasons[REASON_FINGERPRINT] += 1
            continue
        after_fp.append((rec, fp))

    dates = {rec.date for rec, _ in after_fp}
    known_fields = set(store.find_transactions_by_fields(owner_id, dates)) if dates else set()
    survivors: list[tuple[ParsedRecord, str]] = []
    for rec, fp in after_fp:
        if field_key(rec) in known_fields:
            reasons[REASON_FIELDS] += 1
            continue
        survivors.append((rec, fp))

    result = DedupResult(
        survivors=tuple(r for r, _ in survivors),
        fingerprints=tuple(fp for _, fp in survivors),
        reasons=dict(reasons),
    )
    logger.info(
        "dedup: %d in, %d kept, dropped %s",
        len(records),
        len(result.survivors),
        dict(reasons) or "none",
    )
    return result


__all__ = [
    "REASON_IN_BATCH",
    "REASON_FINGERPRINT",
    "REASON_FIELDS",
    "REASON_STORE_CONFLICT",
    "DedupResult",
    "deduplicate",
]
