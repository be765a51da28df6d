"""Positional table reconstruction for bank PDF statements.

A PDF text layer is a bag of positioned fragments with no row or column
structure. The table is rebuilt in four steps, per page:

1. :func:`locate_anchors` finds the header labels and records each column's x.
2. Header glyphs are discarded and :func:`cluster_rows` groups the rest into
   rows by y within a tolerance band.
3. :func:`assign_columns` puts every glyph in the column whose anchor x is
   nearest, space-joining fragments that land in the same cell.
4. Only rows whose date cell matches the layout's date pattern are kept, which
   drops page headers, footers and running totals.

Steps 2 and 3 are pure functions over :class:`PositionedGlyph` so they can be
tested against fixture coordinates without rendering PDFs.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pdfminer.psparser import PSException
from pdfplumber.page import Page
from pdfplumber.utils.exceptions import PdfminerException

from ..errors import HeaderNotFoundError
from ..logging_setup import get_logger
from ..models import PositionedGlyph, RawRow
from .detect import open_pdf

logger = get_logger(__name__)

type GlyphRow = tuple[PositionedGlyph, ...]


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """One logical column: a canonical key and its header label synonyms.

    ``fallback_x`` is used when the label is missing from the page (only
    for non-date columns).
    """

    key: str
    labels: tuple[str, ...]
    fallback_x: float | None = None


@dataclass(frozen=True, slots=True)
class PdfLayout:
    """Anchors and heuristics for one bank's statement layout.

    The first column is the mandatory date column.
    """

    columns: tuple[ColumnSpec, ...]
    tolerance: float
    date_pattern: re.Pattern[str]

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(c.key for c in self.columns)


@dataclass(frozen=True, slots=True)
class Anchor:
    """A located column: where its header sits (``label``/``y`` are None for fallbacks)."""

    key: str
    x: float
    label: str | None = None
    y: float | None = None


def _reading_order(glyphs: Iterable[PositionedGlyph]) -> list[PositionedGlyph]:
    return sorted(glyphs, key=lambda g: (-g.y, g.x))


def locate_anchors(
    glyphs: Sequence[PositionedGlyph], layout: PdfLayout
) -> tuple[Anchor, ...] | None:
    """Return the page's column anchors in layout order, or None without a date anchor.

    For each column the first synonym present wins, taking the first matching
    glyph in reading order. Columns with neither a label nor a fallback are
    left out (their cells stay empty).
    """

    ordered = _reading_order(glyphs)
    first_hit: dict[str, PositionedGlyph] = {}
    for g in ordered:
        first_hit.setdefault(g.text, g)

    anchors: list[Anchor] = []
    for i, spec in enumerate(layout.columns):
        hit = next((first_hit[label] for label in spec.labels if label in first_hit), None)
        if hit is not None:
            anchors.append(Anchor(key=spec.key, x=hit.x, label=hit.text, y=hit.y))
        elif i == 0:
            return None
        elif spec.fallback_x is not None:
            anchors.append(Anchor(key=spec.key, x=spec.fallback_x))
    return tuple(anchors)


def cluster_rows(glyphs: Iterable[PositionedGlyph], tolerance: float) -> list[GlyphRow]:
    """Group glyphs into rows by y, top row first.

    A glyph joins the first existing row whose key y is within ``tolerance``;
    otherwise it starts a row keyed by its own y. Glyphs within a row are
    ordered left to right.
    """

    groups: dict[float, list[PositionedGlyph]] = {}
    for g in glyphs:
        key = next((k for k in groups if abs(k - g.y) <= tolerance), g.y)
        groups.setdefault(key, []).append(g)
    return [
        tuple(sorted(groups[k], key=lambda g: g.x))
        for k in sorted(groups, reverse=True)
    ]


def assign_columns(row: Sequence[PositionedGlyph], anchors: Sequence[Anchor]) -> tuple[str, ...]:
    """Place each glyph in the column with the nearest anchor x (ties go to the earlier column)."""

    cells = [""] * len(anchors)
    if not anchors:
        return ()
    for g in row:
        best = 0
        best_d = abs(g.x - anchors[0].x)
        for i in range(1, len(anchors)):
            d = abs(g.x - anchors[i].x)
            if d < best_d:
                best, best_d = i, d
        cells[best] = f"{cells[best]} {g.text}" if cells[best] else g.text
    return tuple(cells)


def _drop_header_glyphs(
    glyphs: Sequence[PositionedGlyph], anchors: Sequence[Anchor], tolerance: float
) -> list[PositionedGlyph]:
    header = [(a.label, a.y) for a in anchors if a.label is not None and a.y is not None]

    def _is_header(g: PositionedGlyph) -> bool:
        return any(g.text == label and abs(g.y - y) <= tolerance for label, y in header)

    return [g for g in glyphs if not _is_header(g)]


def reconstruct_table(
    pages: Iterable[Sequence[PositionedGlyph]],
    layout: PdfLayout,
    *,
    filename: str | None = None,
) -> list[RawRow]:
    """Rebuild statement rows from per-page glyph lists.

    A page without its own header reuses the most recent anchors; pages before
    the first header are skipped. Rows keep page order, then top-to-bottom order,
    and are aligned to ``layout.keys`` (absent columns become empty strings).

    Raises
    ------
    HeaderNotFoundError
        No page carried the mandatory date anchor.
    """

    keys = layout.keys
    anchors: tuple[Anchor, ...] | None = None
    rows: list[RawRow] = []
    for page_no, glyphs in enumerate(pages, start=1):
        found = locate_anchors(glyphs, layout)
        if found is not None:
            anchors = found
        if anchors is None:
            logger.debug("page %d: no header yet, skipped", page_no)
            continue
        body = _drop_header_glyphs(glyphs, anchors, layout.tolerance)
        positions = [keys.index(a.key) for a in anchors]
        for glyph_row in cluster_rows(body, layout.tolerance):
            assigned = assign_columns(glyph_row, anchors)
            cells = [""] * len(keys)
            for pos, text in zip(positions, assigned, strict=True):
                cells[pos] = text
            if not layout.date_pattern.match(cells[0]):
                continue
            rows.append(RawRow(index=len(rows) + 1, cells=tuple(cells)))

    if anchors is None:
        labels = "/".join(layout.columns[0].labels)
        raise HeaderNotFoundError(
            f"statement header not found (missing date column {labels}); "
            "unsupported statement format or version",
            filename=filename,
        )
    logger.debug("pdf table: %d data rows", len(rows))
    return rows


def glyphs_from_page(page: Page) -> list[PositionedGlyph]:
    """Positioned words of a pdfplumber page, y measured upwards from the page bottom."""

    words = page.extract_words(keep_blank_chars=False, use_text_flow=False, y_tolerance=3)
    out: list[PositionedGlyph] = []
    for w in words:
        text = (w.get("text") or "").strip()
        if not text:
            continue
        out.append(
            PositionedGlyph(
                x=float(w["x0"]),
                y=float(page.height) - float(w["bottom"]),
                text=text,
            )
        )
    return out


def extract_pdf_table(
    data: bytes,
    layout: PdfLayout,
    *,
    password: str | None = None,
    filename: str | None = None,
) -> list[RawRow]:
    with open_pdf(data, password=password, filename=filename) as pdf:
        try:
            pages = [glyphs_from_page(page) for page in pdf.pages]
        except (PdfminerException, PSException) as exc:
            raise HeaderNotFoundError(
                "could not read the PDF text layer", filename=filename
            ) from exc
    logger.info("pdf %s: %d page(s) read", filename or "<bytes>", len(pages))
    return reconstruct_table(pages, layout, filename=filename)


__all__ = [
    "ColumnSpec",
    "PdfLayout",
    "Anchor",
    "GlyphRow",
    "locate_anchors",
    "cluster_rows",
    "assign_columns",
    "reconstruct_table",
    "glyphs_from_page",
    "extract_pdf_table",
]
