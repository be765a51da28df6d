"""XLSX table extraction (payment apps also offer spreadsheet exports).

The first worksheet is scanned for the provider's header row; rows below it are
handled exactly like CSV rows. Native ``datetime``/number cells are rendered to
text by :func:`statement_import.ingest.utils.clean_cell`.
"""

from __future__ import annotations

import io
import zipfile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import DecodeError, HeaderNotFoundError
from ..logging_setup import get_logger
from ..models import RawRow
from .csv_table import TableLayout
from .utils import collect_rows, matches_header

logger = get_logger(__name__)


def extract_xlsx_table(
    data: bytes,
    layout: TableLayout,
    *,
    filename: str | None = None,
) -> list[RawRow]:
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise DecodeError(
            "not a readable XLSX workbook; re-export the statement as CSV or XLSX",
            filename=filename,
        ) from exc

    try:
        ws = wb.worksheets[0]
        header_at: int | None = None
        pending: list[tuple[int, tuple[object, ...]]] = []
        for row_number, values in enumerate(ws.iter_rows(values_only=True), start=1):
            if header_at is None:
                cells = ["" if v is None else str(v) for v in values]
                if matches_header(cells, layout.columns):
                    header_at = row_number
                continue
            pending.append((row_number, values))
    finally:
        wb.close()

    if header_at is None:
        raise HeaderNotFoundError(
            "header row not found in the first worksheet; unsupported export format or version",
            filename=filename,
        )

    rows = list(collect_rows(pending, width=len(layout.columns), first_cell=layout.first_cell))
    logger.debug("xlsx header at row %d, %d data rows", header_at, len(rows))
    return rows


__all__ = ["extract_xlsx_table"]
