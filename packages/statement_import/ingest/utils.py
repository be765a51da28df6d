"""Cell-level helpers shared by the CSV and XLSX extractors."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime, time
from decimal import Decimal

from ..logging_setup import get_logger
from ..models import RawRow

logger = get_logger(__name__)

_RULE_RE = re.compile(r"^-+$")


def clean_cell(value: object) -> str:
    """Render a cell as trimmed text with control characters removed.

    Spreadsheet-native values are formatted so that downstream date and amount
    parsing sees the same text a CSV export would carry.
    """

    if value is None:
        return ""
    if isinstance(value, datetime):
        text = value.strftime("%Y-%m-%d %H:%M:%S")
    elif isinstance(value, date):
        text = value.strftime("%Y-%m-%d")
    elif isinstance(value, time):
        text = value.strftime("%H:%M:%S")
    elif isinstance(value, bool):
        text = str(value)
    elif isinstance(value, float):
        # repr() of a float is the shortest round-tripping form (0.1 -> "0.1").
        text = format(Decimal(repr(value)), "f")
    else:
        text = str(value)
    text = "".join(ch for ch in text if unicodedata.category(ch) != "Cc" and ch != "\ufeff")
    return text.strip()


def matches_header(cells: Sequence[str], expected: Sequence[str]) -> bool:
    """True when ``cells`` begins with exactly the ``expected`` column names."""

    if len(cells) < len(expected):
        return False
    return all(clean_cell(c) == e for c, e in zip(cells, expected, strict=False))


def fit_to_width(cells: Sequence[str], width: int) -> tuple[str, ...]:
    """Pad with empty strings or truncate so the row has ``width`` cells."""

    out = list(cells[:width])
    if len(out) < width:
        out.extend([""] * (width - len(out)))
    return tuple(out)


def is_filler(cells: Sequence[str]) -> bool:
    """Blank rows, ``----`` separator rules and all-empty rows."""

    if not cells or all(c == "" for c in cells):
        return True
    joined = "".join(cells)
    return bool(_RULE_RE.match(joined)) or bool(_RULE_RE.match(cells[0]) and not any(cells[1:]))


def is_footer(cells: Sequence[str], first_cell: re.Pattern[str]) -> bool:
    """A trailing note (export time, record count): a lone non-date first cell."""

    return not first_cell.match(cells[0]) and not any(cells[1:])


def collect_rows(
    candidates: Iterable[tuple[int, Sequence[object]]],
    *,
    width: int,
    first_cell: re.Pattern[str],
) -> Iterator[RawRow]:
    """Turn ``(source index, raw cells)`` pairs into :class:`RawRow` objects.

    Filler rows and footer notes are dropped. Every other row is kept, even
    when its first cell is not a date, so the normalizer either counts it or
    rejects it with its row index.
    """

    for index, raw in candidates:
        cells = [clean_cell(v) for v in raw]
        if is_filler(cells):
            continue
        if is_footer(cells, first_cell):
            logger.debug("row %d: footer %r dropped", index, cells[0])
            continue
        yield RawRow(index=index, cells=fit_to_width(cells, width))


__all__ = ["clean_cell", "matches_header", "fit_to_width", "is_filler", "is_footer", "collect_rows"]
