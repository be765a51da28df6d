"""Fingerprint generations: deterministic duplicate-detection keys per record.

:data:`FINGERPRINT_GENERATIONS` is ordered newest first. The first entry is
what gets stored on new ledger rows; older entries reproduce the keys earlier
importers wrote so those rows are still recognized. Dedup iterates the tuple,
so adding a generation needs no change to the lookup logic.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from .models import ParsedRecord, Provider
from .store import FieldKey, to_cents

_WALLETS = frozenset({Provider.WECHAT, Provider.ALIPAY})


def _fmt_2dp(d: Decimal) -> str:
    return f"{d.quantize(Decimal('0.01')):.2f}"


@dataclass(frozen=True, slots=True)
class FingerprintGeneration:
    name: str
    compute: Callable[[ParsedRecord], str]


def fingerprint_v2(record: ParsedRecord) -> str:
    """Current key: SHA-256 hex of ``provider|YYYYMMDDHHMMSS|signed amount[|running balance]``.

    The readable part is the timestamp digits, the signed amount to two places
    and, for bank rows, the running balance. The provider prefix keeps equal
    amounts at the same second from two statements apart, and the digest keeps
    ``unique_hash`` a fixed 64 characters whatever the provider.
    """

    parts = [
        record.source_provider.value,
        record.occurred_at.strftime("%Y%m%d%H%M%S"),
        _fmt_2dp(record.signed_amount),
    ]
    if record.running_balance is not None:
        parts.append(_fmt_2dp(record.running_balance))
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def fingerprint_v1(record: ParsedRecord) -> str:
    """Readable legacy key: ``provider|timestamp|abs cents|description[|order id|merchant id]``.

    Bank importers only ever stored the calendar date, so their timestamp is
    pinned to midnight; order IDs were only part of wallet keys.
    """

    if record.source_provider in _WALLETS:
        stamp = record.occurred_at.strftime("%Y-%m-%d %H:%M:%S")
    else:
        stamp = record.occurred_at.strftime("%Y-%m-%d") + " 00:00:00"
    parts = [
        record.source_provider.value,
        stamp,
        str(to_cents(record.signed_amount)),
        record.description,
    ]
    if record.source_provider in _WALLETS:
        parts.extend([record.provider_order_id or "", record.merchant_order_id or ""])
    return "|".join(parts)


FINGERPRINT_GENERATIONS: tuple[FingerprintGeneration, ...] = (
    FingerprintGeneration("v2", fingerprint_v2),
    FingerprintGeneration("v1", fingerprint_v1),
)
CURRENT_GENERATION = FINGERPRINT_GENERATIONS[0]


def current_fingerprint(record: ParsedRecord) -> str:
    return CURRENT_GENERATION.compute(record)


def all_fingerprints(record: ParsedRecord) -> tuple[str, ...]:
    """Keys under every generation, newest first."""

    return tuple(g.compute(record) for g in FINGERPRINT_GENERATIONS)


def field_key(record: ParsedRecord) -> FieldKey:
    return FieldKey(record.date, to_cents(record.signed_amount), record.description)


__all__ = [
    "FingerprintGeneration",
    "FINGERPRINT_GENERATIONS",
    "CURRENT_GENERATION",
    "fingerprint_v1",
    "fingerprint_v2",
    "current_fingerprint",
    "all_fingerprints",
    "field_key",
]
