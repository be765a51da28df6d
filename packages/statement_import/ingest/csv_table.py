"""Delimiter-based table extraction for payment-app CSV exports.

Exports start with a free-form preamble (account holder, date range, notes);
the table begins at the first line whose cells start with the provider's exact
ordered header. Cells honour double-quote escaping and embedded commas.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterator
from dataclasses import dataclass

from ..errors import HeaderNotFoundError
from ..logging_setup import get_logger
from ..models import RawRow
from .utils import collect_rows, matches_header

logger = get_logger(__name__)

DATE_LIKE_RE = re.compile(r"^\d{4}[-/.]\d{1,2}[-/.]\d{1,2}")


@dataclass(frozen=True, slots=True)
class TableLayout:
    """Header and decoding rules for a CSV/XLSX export.

    Attributes
    ----------
    columns:
        Exact, ordered header cells. Rows are aligned to this width.
    encodings:
        Candidate text encodings, tried in order.
    anchors:
        Strings whose presence confirms a decoding is right.
    first_cell:
        Date pattern; a row with a non-matching first cell and nothing
        else is a footer note.
    """

    columns: tuple[str, ...]
    encodings: tuple[str, ...]
    anchors: tuple[str, ...]
    first_cell: re.Pattern[str] = DATE_LIKE_RE


def split_csv_line(line: str) -> list[str]:
    """Split one CSV line into raw cells (``""`` inside quotes is a literal quote)."""

    return next(csv.reader([line]), [])


def extract_csv_table(
    text: str,
    layout: TableLayout,
    *,
    filename: str | None = None,
) -> list[RawRow]:
    """Return the data rows following the header line.

    Raises
    ------
    HeaderNotFoundError
        No line starts with ``layout.columns``.
    """

    lines = text.splitlines()
    header_at: int | None = None
    for i, line in enumerate(lines):
        if matches_header(split_csv_line(line), layout.columns):
            header_at = i
            break
    if header_at is None:
        raise HeaderNotFoundError(
            "header row not found (expected columns starting with "
            f"{','.join(layout.columns[:3])}...); unsupported export format or version",
            filename=filename,
        )

    body = "\n".join(lines[header_at + 1 :])
    reader = csv.reader(io.StringIO(body))

    def _numbered() -> Iterator[tuple[int, list[str]]]:
        # Physical 1-based line number of the row's last line.
        for cells in reader:
            yield header_at + 1 + reader.line_num, cells

    rows = list(collect_rows(_numbered(), width=len(layout.columns), first_cell=layout.first_cell))
    logger.debug("csv header at line %d, %d data rows", header_at + 1, len(rows))
    return rows


__all__ = ["DATE_LIKE_RE", "TableLayout", "split_csv_line", "extract_csv_table"]
