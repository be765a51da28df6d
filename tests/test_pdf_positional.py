from __future__ import annotations

import re

import pytest

from statement_import.errors import HeaderNotFoundError
from statement_import.ingest.pdf_table import (
    Anchor,
    ColumnSpec,
    PdfLayout,
    assign_columns,
    cluster_rows,
    locate_anchors,
    reconstruct_table,
)
from statement_import.models import PositionedGlyph as G
from statement_import.providers import BOC_LAYOUT, CMB_LAYOUT

SIMPLE = PdfLayout(
    columns=(
        ColumnSpec("date", ("日期",)),
        ColumnSpec("amount", ("金额",)),
        ColumnSpec("summary", ("摘要",)),
    ),
    tolerance=3.0,
    date_pattern=re.compile(r"^\d{4}-\d{2}-\d{2}$"),
)


def _header(y: float = 700.0) -> list[G]:
    return [G(50, y, "日期"), G(300, y, "金额"), G(420, y, "摘要")]


# ---- cluster_rows ------------------------------------------------------------


def test_cluster_rows_groups_within_tolerance_and_orders_top_down():
    glyphs = [
        G(300, 660.0, "b"),
        G(50, 680.0, "x"),
        G(200, 681.5, "y"),
        G(50, 659.2, "a"),
    ]
    rows = cluster_rows(glyphs, 2.5)
    assert [[g.text for g in r] for r in rows] == [["x", "y"], ["a", "b"]]


def test_cluster_rows_key_is_first_glyph_y():
    # 682 is within 2.5 of the 680 key; 684 is not (it is 2.0 from 682 but the key stays 680).
    rows = cluster_rows([G(0, 680, "a"), G(10, 682, "b"), G(20, 684, "c")], 2.5)
    assert [[g.text for g in r] for r in rows] == [["c"], ["a", "b"]]


def test_cluster_rows_empty():
    assert cluster_rows([], 3.0) == []


# ---- assign_columns ----------------------------------------------------------


def test_assign_columns_nearest_x_and_space_join():
    anchors = [Anchor("date", 50), Anchor("amount", 300), Anchor("summary", 420)]
    row = [G(48, 680, "2024-01-05"), G(298, 680, "-12.50"), G(415, 680, "Coffee"), G(460, 680, "Shop")]
    assert assign_columns(row, anchors) == ("2024-01-05", "-12.50", "Coffee Shop")


def test_assign_columns_tie_goes_to_earlier_column():
    anchors = [Anchor("a", 100), Anchor("b", 200)]
    assert assign_columns([G(150, 0, "mid")], anchors) == ("mid", "")


# ---- locate_anchors ----------------------------------------------------------


def test_locate_anchors_prefers_first_synonym_present():
    glyphs = [G(40, 700, "日期"), G(60, 700, "交易日期"), G(200, 700, "金额")]
    anchors = locate_anchors(glyphs, BOC_LAYOUT)
    assert anchors is not None
    assert anchors[0] == Anchor("date", 60, label="交易日期", y=700)
    assert [a.key for a in anchors] == ["date", "amount"]


def test_locate_anchors_without_date_returns_none():
    assert locate_anchors([G(300, 700, "金额")], SIMPLE) is None


def test_locate_anchors_cmb_falls_back_to_known_positions():
    anchors = locate_anchors([G(36, 700, "记账日期"), G(160, 700, "交易金额")], CMB_LAYOUT)
    assert anchors is not None
    xs = {a.key: a.x for a in anchors}
    assert xs == {
        "date": 36,
        "currency": 98.74,
        "amount": 160,
        "balance": 234.71,
        "summary": 307.88,
        "counterparty": 417.64,
    }


# ---- reconstruct_table -------------------------------------------------------


def test_header_700_rows_680_660_amount_glyph_at_298():
    page = [
        *_header(700),
        G(50, 680, "2024-03-01"),
        G(298, 680, "100.00"),
        G(420, 680, "工资"),
        G(50, 660, "2024-03-02"),
        G(298, 660.8, "-20.00"),
        G(421, 659.5, "午餐"),
    ]
    rows = reconstruct_table([page], SIMPLE)
    assert [r.cells for r in rows] == [
        ("2024-03-01", "100.00", "工资"),
        ("2024-03-02", "-20.00", "午餐"),
    ]
    assert [r.index for r in rows] == [1, 2]


def test_rows_without_date_first_cell_are_dropped():
    page = [
        *_header(),
        G(50, 680, "2024-03-01"),
        G(300, 680, "1.00"),
        G(50, 640, "合计"),
        G(300, 640, "1.00"),
        G(50, 40, "第1页"),
    ]
    rows = reconstruct_table([page], SIMPLE)
    assert len(rows) == 1


def test_label_text_outside_header_band_is_kept():
    page = [*_header(), G(50, 680, "2024-03-01"), G(420, 680, "金额")]
    rows = reconstruct_table([page], SIMPLE)
    assert rows[0].cells == ("2024-03-01", "", "金额")


def test_multi_page_reuses_previous_anchors_and_keeps_page_order():
    intro = [G(50, 750, "个人账户明细"), G(50, 700, "2024-01-01")]  # before any header
    page1 = [*_header(), G(50, 680, "2024-03-01"), G(300, 680, "5.00")]
    page2 = [G(52, 760, "2024-03-09"), G(301, 760, "7.00"), G(50, 700, "2024-03-10"), G(300, 700, "8.00")]
    rows = reconstruct_table([intro, page1, page2], SIMPLE)
    assert [r.cells[:2] for r in rows] == [
        ("2024-03-01", "5.00"),
        ("2024-03-09", "7.00"),
        ("2024-03-10", "8.00"),
    ]


def test_missing_date_anchor_everywhere_raises():
    with pytest.raises(HeaderNotFoundError) as exc:
        reconstruct_table([[G(300, 700, "金额")]], SIMPLE, filename="x.pdf")
    assert "x.pdf" in str(exc.value)


def test_boc_row_cells_follow_layout_keys_with_absent_columns_empty():
    page = [
        G(40, 700, "交易日期"),
        G(150, 700, "借方金额"),
        G(230, 700, "贷方金额"),
        G(310, 700, "余额"),
        G(400, 700, "摘要"),
        G(40, 680, "2024/02/03"),
        G(150, 680, "30.00"),
        G(310, 680, "970.00"),
        G(400, 680, "消费"),
    ]
    rows = reconstruct_table([page], BOC_LAYOUT)
    assert rows[0].cells == ("2024/02/03", "", "30.00", "", "", "970.00", "消费", "")
