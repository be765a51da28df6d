"""Data shapes passed between the import stages.

Flow: :class:`RawDocument` -> (:class:`PositionedGlyph` for PDFs) ->
:class:`RawRow` -> :class:`ParsedRecord` -> :class:`ImportReport`.
Everything here is immutable; the only mutable state in an import lives in the
ledger store and in the undo handle.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from pathlib import Path


class Provider(StrEnum):
    """Where a ledger row came from (``manual`` rows have no import layout)."""

    MANUAL = "manual"
    WECHAT = "wechat"
    ALIPAY = "alipay"
    CMB = "cmb"
    BOC = "boc"


class DocumentKind(StrEnum):
    CSV = "csv"
    XLSX = "xlsx"
    PDF = "pdf"


class Direction(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"
    # Transfers, refunds in flight and other "not counted" lines.
    NEUTRAL = "neutral"


# ---------------------------------------------------------------------------
# Extraction stage
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawDocument:
    """Selected file bytes plus what is needed to open them.

    ``password`` only matters for encrypted PDFs.
    """

    data: bytes
    kind: DocumentKind
    filename: str = ""
    password: str | None = field(default=None, repr=False)

    @classmethod
    def from_path(cls, path: str | Path, *, password: str | None = None) -> RawDocument:
        from .ingest.detect import kind_from_filename

        p = Path(path)
        return cls(
            data=p.read_bytes(),
            kind=kind_from_filename(p.name),
            filename=p.name,
            password=password,
        )


@dataclass(frozen=True, slots=True)
class PositionedGlyph:
    """A text fragment from a PDF text layer.

    ``y`` grows upwards (PDF user space), so the top of a page has the largest y.
    """

    x: float
    y: float
    text: str


@dataclass(frozen=True, slots=True)
class RawRow:
    """Cells aligned to the provider's column order.

    ``index`` is the 1-based position of the row in the source (CSV line,
    spreadsheet row, or PDF data row) and is used in error messages.
    """

    index: int
    cells: tuple[str, ...]

    def __getitem__(self, position: int) -> str:
        return self.cells[position]

    def __len__(self) -> int:
        return len(self.cells)


# ---------------------------------------------------------------------------
# Normalization stage
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedRecord:
    """Canonical pre-ledger transaction.

    Attributes
    ----------
    signed_amount:
        Income positive, expense negative. Never zero.
    occurred_at:
        Naive local timestamp; midnight when the source had no time of day.
    has_time:
        Whether the source carried a time of day.
    description:
        Best available free text (may be empty).
    provider_order_id, merchant_order_id:
        Identifiers printed by payment apps, when present.
    running_balance:
        Account balance after this line (bank statements only).
    category_hint:
        Provider-side classification text used for coarse category mapping.
    row_index:
        Source row the record came from.
    """

    signed_amount: Decimal
    occurred_at: datetime
    description: str
    source_provider: Provider
    has_time: bool = False
    provider_order_id: str | None = None
    merchant_order_id: str | None = None
    running_balance: Decimal | None = None
    category_hint: str = ""
    row_index: int = 0

    @property
    def date(self) -> date:
        return self.occurred_at.date()

    @property
    def direction(self) -> Direction:
        return Direction.INCOME if self.signed_amount > 0 else Direction.EXPENSE


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Output of the parse stage for one document.

    ``parsed`` counts every data row seen; ``skipped`` counts the neutral or
    zero-amount rows among them that produced no record.
    """

    provider: Provider
    records: tuple[ParsedRecord, ...]
    parsed: int
    skipped: int
    filename: str = ""


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def _noop_undo() -> bool:
    return False


@dataclass(frozen=True, slots=True)
class ImportReport:
    """What an import did.

    ``parsed == skipped + deduplicated + committed`` always holds, so no row
    disappears without being counted. ``undo`` is one-shot: it returns True the
    first time it reverses the batch and False afterwards.
    """

    provider: Provider
    account_id: int | None
    parsed: int
    skipped: int
    deduplicated: int
    committed: int
    committed_ids: tuple[int, ...] = ()
    balance_delta: Decimal = Decimal("0.00")
    dedup_reasons: Mapping[str, int] = field(default_factory=dict)
    created_category_ids: tuple[int, ...] = ()
    undo_window_seconds: float = 5.0
    undo: Callable[[], bool] = _noop_undo


__all__ = [
    "Provider",
    "DocumentKind",
    "Direction",
    "RawDocument",
    "PositionedGlyph",
    "RawRow",
    "ParsedRecord",
    "ParseResult",
    "ImportReport",
]
