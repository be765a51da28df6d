"""Row -> :class:`ParsedRecord` normalizers, one per provider.

Each normalizer takes one :class:`RawRow` aligned to its provider's layout and
returns a record, or ``None`` when the row is neutral (transfers, "not counted"
lines) or carries a zero amount. Those rows are counted as skipped by the
caller; malformed amounts and dates raise ``ValueError``, which the caller
turns into :class:`statement_import.errors.ValidationError` with the row index.

Sign convention: income positive, expense negative.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models import Direction, ParsedRecord, Provider, RawRow

type RowNormalizer = Callable[[RawRow], ParsedRecord | None]

# ---------------------------------------------------------------------------
# Helpers (amount/date/text normalization)
# ---------------------------------------------------------------------------

_CENT = Decimal("0.01")
_CURRENCY_MARKS = ("¥", "￥", "CNY", "RMB")
_DATETIME_RE = re.compile(
    r"^(?P<y>\d{4})[-/.](?P<m>\d{1,2})[-/.](?P<d>\d{1,2})"
    r"(?:(?:T|\s+)(?P<H>\d{1,2}):(?P<M>\d{2})(?::(?P<S>\d{2})(?:\.\d+)?)?)?$"
)
# Placeholder payment apps print for "no value".
_PLACEHOLDERS = frozenset({"/", "-", "--"})


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse a money cell to a 2dp ``Decimal``; ``None`` for an empty cell.

    Accepts currency marks, thousands separators, a leading ``+``/``-`` and
    accounting-style parentheses.
    """

    if raw is None:
        return None
    s = raw.strip()
    if not s or s in _PLACEHOLDERS:
        return None
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()
    for mark in _CURRENCY_MARKS:
        s = s.replace(mark, "")
    s = s.replace(",", "").replace(" ", "")
    if s.startswith("+"):
        s = s[1:]
    elif s.startswith("-"):
        negative = not negative
        s = s[1:]
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    q = d.quantize(_CENT, rounding=ROUND_HALF_UP)
    return -q if negative else q


def parse_occurred_at(raw: str) -> tuple[datetime, bool]:
    """Parse ``YYYY-MM-DD``/``YYYY/M/D``/``YYYY.MM.DD`` with optional time of day.

    Returns the naive timestamp (midnight when no time is given) and whether a
    time was present.
    """

    s = raw.strip()
    m = _DATETIME_RE.match(s)
    if m is None:
        raise ValueError(f"invalid date: {raw!r}")
    has_time = m.group("H") is not None
    try:
        dt = datetime(
            int(m.group("y")),
            int(m.group("m")),
            int(m.group("d")),
            int(m.group("H") or 0),
            int(m.group("M") or 0),
            int(m.group("S") or 0),
        )
    except ValueError as exc:
        raise ValueError(f"invalid date: {raw!r}") from exc
    return dt, has_time


def _text(value: str) -> str:
    s = " ".join(value.split())
    return "" if s in _PLACEHOLDERS else s


def _first_non_empty(values: Sequence[str]) -> str:
    for v in values:
        t = _text(v)
        if t:
            return t
    return ""


def _join(parts: Sequence[str], sep: str = " - ") -> str:
    return sep.join(t for t in (_text(p) for p in parts) if t)


def _optional_id(value: str) -> str | None:
    return _text(value) or None


def direction_from_label(label: str) -> Direction:
    """Map a wallet ``收/支`` cell to a direction; anything unrecognized is neutral."""

    s = label.strip()
    if s == "收入":
        return Direction.INCOME
    if s == "支出":
        return Direction.EXPENSE
    return Direction.NEUTRAL


def _signed(amount: Decimal, direction: Direction) -> Decimal:
    return abs(amount) if direction is Direction.INCOME else -abs(amount)


# ---------------------------------------------------------------------------
# Wallet exports (CSV/XLSX)
# ---------------------------------------------------------------------------

# Column positions follow the exact export headers declared in providers.py.
_WX_TIME, _WX_KIND, _WX_PEER, _WX_ITEM, _WX_INOUT, _WX_AMOUNT = 0, 1, 2, 3, 4, 5
_WX_ORDER, _WX_MERCHANT = 8, 9

_ALI_TIME, _ALI_CATEGORY, _ALI_PEER, _ALI_ITEM, _ALI_INOUT, _ALI_AMOUNT = 0, 1, 2, 4, 5, 6
_ALI_ORDER, _ALI_MERCHANT = 9, 10


def normalize_wechat(row: RawRow) -> ParsedRecord | None:
    direction = direction_from_label(row[_WX_INOUT])
    if direction is Direction.NEUTRAL:
        return None
    amount = parse_amount(row[_WX_AMOUNT])
    if amount is None:
        raise ValueError(f"missing amount for {row[_WX_INOUT]!r} row")
    if amount == 0:
        return None
    occurred_at, has_time = parse_occurred_at(row[_WX_TIME])
    return ParsedRecord(
        signed_amount=_signed(amount, direction),
        occurred_at=occurred_at,
        has_time=has_time,
        description=_first_non_empty([row[_WX_ITEM], row[_WX_PEER]]),
        source_provider=Provider.WECHAT,
        provider_order_id=_optional_id(row[_WX_ORDER]),
        merchant_order_id=_optional_id(row[_WX_MERCHANT]),
        category_hint=_text(row[_WX_KIND]),
        row_index=row.index,
    )


def normalize_alipay(row: RawRow) -> ParsedRecord | None:
    direction = direction_from_label(row[_ALI_INOUT])
    if direction is Direction.NEUTRAL:
        return None
    amount = parse_amount(row[_ALI_AMOUNT])
    if amount is None:
        raise ValueError(f"missing amount for {row[_ALI_INOUT]!r} row")
    if amount == 0:
        return None
    occurred_at, has_time = parse_occurred_at(row[_ALI_TIME])
    return ParsedRecord(
        signed_amount=_signed(amount, direction),
        occurred_at=occurred_at,
        has_time=has_time,
        description=_first_non_empty([row[_ALI_ITEM], row[_ALI_PEER]]),
        source_provider=Provider.ALIPAY,
        provider_order_id=_optional_id(row[_ALI_ORDER]),
        merchant_order_id=_optional_id(row[_ALI_MERCHANT]),
        category_hint=_text(row[_ALI_CATEGORY]),
        row_index=row.index,
    )


# ---------------------------------------------------------------------------
# Bank statements (PDF); cells follow PdfLayout.keys
# ---------------------------------------------------------------------------

_CMB_DATE, _CMB_AMOUNT, _CMB_BALANCE, _CMB_SUMMARY, _CMB_PEER = 0, 2, 3, 4, 5

_BOC_DATE, _BOC_DEBIT, _BOC_CREDIT, _BOC_AMOUNT = 0, 2, 3, 4
_BOC_BALANCE, _BOC_SUMMARY, _BOC_PEER = 5, 6, 7


def normalize_cmb(row: RawRow) -> ParsedRecord | None:
    # 交易金额 already carries the sign.
    amount = parse_amount(row[_CMB_AMOUNT])
    if amount is None or amount == 0:
        return None
    occurred_at, has_time = parse_occurred_at(row[_CMB_DATE])
    return ParsedRecord(
        signed_amount=amount,
        occurred_at=occurred_at,
        has_time=has_time,
        description=_join([row[_CMB_SUMMARY], row[_CMB_PEER]]),
        source_provider=Provider.CMB,
        running_balance=parse_amount(row[_CMB_BALANCE]),
        category_hint=_text(row[_CMB_SUMMARY]),
        row_index=row.index,
    )


def normalize_boc(row: RawRow) -> ParsedRecord | None:
    credit = parse_amount(row[_BOC_CREDIT])
    debit = parse_amount(row[_BOC_DEBIT])
    if credit is not None and credit != 0:
        signed = abs(credit)
    elif debit is not None and debit != 0:
        signed = -abs(debit)
    else:
        combined = parse_amount(row[_BOC_AMOUNT])
        if combined is None or combined == 0:
            return None
        signed = combined
    occurred_at, has_time = parse_occurred_at(row[_BOC_DATE])
    return ParsedRecord(
        signed_amount=signed,
        occurred_at=occurred_at,
        has_time=has_time,
        description=_join([row[_BOC_SUMMARY], row[_BOC_PEER]]),
        source_provider=Provider.BOC,
        running_balance=parse_amount(row[_BOC_BALANCE]),
        category_hint=_text(row[_BOC_SUMMARY]),
        row_index=row.index,
    )


__all__ = [
    "RowNormalizer",
    "parse_amount",
    "parse_occurred_at",
    "direction_from_label",
    "normalize_wechat",
    "normalize_alipay",
    "normalize_cmb",
    "normalize_boc",
]
