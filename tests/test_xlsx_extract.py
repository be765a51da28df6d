from __future__ import annotations

import io
from datetime import datetime

import pytest
from openpyxl import Workbook

from statement_import.errors import DecodeError, HeaderNotFoundError
from statement_import.ingest.xlsx_table import extract_xlsx_table
from statement_import.models import DocumentKind, Provider, RawDocument
from statement_import.providers import ALIPAY_COLUMNS, PROFILES, parse_document

ALIPAY_LAYOUT = PROFILES[Provider.ALIPAY].table


def _workbook_bytes(rows: list[list[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _alipay_sheet() -> bytes:
    return _workbook_bytes(
        [
            ["支付宝交易记录明细查询"],
            ["账号：[someone@example.com]"],
            list(ALIPAY_COLUMNS),
            [
                datetime(2024, 2, 1, 9, 15, 0),
                "餐饮美食",
                "早餐店",
                None,
                "包子",
                "支出",
                6.5,
                "余额宝",
                "交易成功",
                "A1",
                "B1",
                None,
            ],
            [None, None, None],
            ["2024-02-02 18:00:00", "转账红包", "Alice", None, "红包", "收入", 20, "余额", "交易成功", "A2"],
            ["共2笔记录"],
        ]
    )


def test_native_cells_render_as_text_and_keep_sheet_row_numbers():
    rows = extract_xlsx_table(_alipay_sheet(), ALIPAY_LAYOUT)
    assert [r.index for r in rows] == [4, 6]
    first = rows[0]
    assert first[0] == "2024-02-01 09:15:00"
    assert first[3] == ""
    assert first[6] == "6.5"
    assert len(first) == len(ALIPAY_COLUMNS)
    assert rows[1][6] == "20"
    assert rows[1][10] == ""


def test_xlsx_document_parses_end_to_end():
    doc = RawDocument(data=_alipay_sheet(), kind=DocumentKind.XLSX, filename="alipay.xlsx")
    result = parse_document(doc, Provider.ALIPAY)
    assert result.parsed == 2
    assert [str(r.signed_amount) for r in result.records] == ["-6.50", "20.00"]


def test_missing_header_in_first_sheet():
    data = _workbook_bytes([["hello"], ["world"]])
    with pytest.raises(HeaderNotFoundError):
        extract_xlsx_table(data, ALIPAY_LAYOUT, filename="a.xlsx")


def test_not_a_workbook():
    with pytest.raises(DecodeError) as exc:
        extract_xlsx_table(b"plain text, not a zip", ALIPAY_LAYOUT, filename="a.xlsx")
    assert exc.value.filename == "a.xlsx"
