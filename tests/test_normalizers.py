from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from statement_import.errors import DecodeError, ValidationError
from statement_import.models import Direction, DocumentKind, Provider, RawDocument, RawRow
from statement_import.normalizers import (
    direction_from_label,
    normalize_alipay,
    normalize_boc,
    normalize_cmb,
    normalize_wechat,
    parse_amount,
    parse_occurred_at,
)
from statement_import.providers import WECHAT_COLUMNS, parse_document


def _wechat(time="2024-01-05 12:30:00", kind="商户消费", peer="Coffee Co", item="Latte",
            inout="支出", amount="¥12.50", order="4200001", merchant="M-77"):
    return RawRow(
        index=7,
        cells=(time, kind, peer, item, inout, amount, "零钱", "支付成功", order, merchant, "/"),
    )


# ---- parse_amount ------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("¥12.50", Decimal("12.50")),
        ("￥1,234.5", Decimal("1234.50")),
        ("-30", Decimal("-30.00")),
        ("+8.005", Decimal("8.01")),
        ("(45.10)", Decimal("-45.10")),
        ("CNY 99", Decimal("99.00")),
        (" RMB-1,000.00 ", Decimal("-1000.00")),
    ],
)
def test_parse_amount_accepts_statement_formats(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "  ", "/", "-", "--"])
def test_parse_amount_empty_and_placeholders(raw):
    assert parse_amount(raw) is None


@pytest.mark.parametrize("raw", ["abc", "1.2.3", "NaN", "Infinity"])
def test_parse_amount_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


# ---- parse_occurred_at -------------------------------------------------------


def test_parse_occurred_at_variants():
    assert parse_occurred_at("2024-01-05 12:30:00") == (datetime(2024, 1, 5, 12, 30), True)
    assert parse_occurred_at("2024/1/5 8:05") == (datetime(2024, 1, 5, 8, 5), True)
    assert parse_occurred_at("2024-01-05T23:59:59.123") == (datetime(2024, 1, 5, 23, 59, 59), True)
    assert parse_occurred_at("2024.03.09") == (datetime(2024, 3, 9), False)


@pytest.mark.parametrize("raw", ["", "05/01/2024", "2024-13-01", "2024-02-30 10:00"])
def test_parse_occurred_at_rejects(raw):
    with pytest.raises(ValueError):
        parse_occurred_at(raw)


def test_direction_from_label():
    assert direction_from_label(" 收入 ") is Direction.INCOME
    assert direction_from_label("支出") is Direction.EXPENSE
    assert direction_from_label("/") is Direction.NEUTRAL
    assert direction_from_label("不计收支") is Direction.NEUTRAL


# ---- wallets -----------------------------------------------------------------


def test_wechat_expense_row():
    rec = normalize_wechat(_wechat())
    assert rec is not None
    assert rec.signed_amount == Decimal("-12.50")
    assert rec.direction is Direction.EXPENSE
    assert rec.occurred_at == datetime(2024, 1, 5, 12, 30)
    assert rec.has_time is True
    assert rec.description == "Latte"
    assert rec.provider_order_id == "4200001"
    assert rec.merchant_order_id == "M-77"
    assert rec.category_hint == "商户消费"
    assert rec.source_provider is Provider.WECHAT
    assert rec.row_index == 7


def test_wechat_income_sign_and_peer_fallback_description():
    rec = normalize_wechat(_wechat(inout="收入", item="/", peer="Bob", amount="-100"))
    assert rec is not None
    assert rec.signed_amount == Decimal("100.00")
    assert rec.description == "Bob"


def test_wechat_neutral_and_zero_rows_are_skipped():
    assert normalize_wechat(_wechat(inout="/")) is None
    assert normalize_wechat(_wechat(amount="0.00")) is None


def test_wechat_placeholder_ids_become_none():
    rec = normalize_wechat(_wechat(order="/", merchant=""))
    assert rec is not None
    assert rec.provider_order_id is None
    assert rec.merchant_order_id is None


def test_wechat_missing_amount_is_an_error():
    with pytest.raises(ValueError):
        normalize_wechat(_wechat(amount=""))


def test_alipay_row_uses_its_own_columns():
    row = RawRow(
        index=3,
        cells=(
            "2024-02-01 09:15:00",
            "餐饮美食",
            "早餐店",
            "shop@example.com",
            "包子",
            "支出",
            "6.5",
            "余额宝",
            "交易成功",
            "A1",
            "B1",
            "",
        ),
    )
    rec = normalize_alipay(row)
    assert rec is not None
    assert rec.signed_amount == Decimal("-6.50")
    assert rec.description == "包子"
    assert rec.category_hint == "餐饮美食"
    assert (rec.provider_order_id, rec.merchant_order_id) == ("A1", "B1")


# ---- banks -------------------------------------------------------------------


def test_cmb_sign_comes_from_amount_and_description_joins_summary_and_peer():
    row = RawRow(index=1, cells=("2024-03-02", "人民币", "-1,200.00", "8,800.00", "快捷支付", "某商户"))
    rec = normalize_cmb(row)
    assert rec is not None
    assert rec.signed_amount == Decimal("-1200.00")
    assert rec.running_balance == Decimal("8800.00")
    assert rec.description == "快捷支付 - 某商户"
    assert rec.has_time is False


def test_cmb_blank_amount_is_skipped():
    assert normalize_cmb(RawRow(index=1, cells=("2024-03-02", "", "", "1.00", "x", ""))) is None


@pytest.mark.parametrize(
    ("debit", "credit", "amount", "expected"),
    [
        ("", "500.00", "", Decimal("500.00")),
        ("30.00", "", "", Decimal("-30.00")),
        ("30.00", "0.00", "", Decimal("-30.00")),
        ("", "", "-12.00", Decimal("-12.00")),
    ],
)
def test_boc_credit_then_debit_then_combined_amount(debit, credit, amount, expected):
    row = RawRow(
        index=2,
        cells=("2024/02/03", "人民币", debit, credit, amount, "970.00", "消费", ""),
    )
    rec = normalize_boc(row)
    assert rec is not None
    assert rec.signed_amount == expected
    assert rec.description == "消费"


def test_boc_row_without_any_amount_is_skipped():
    row = RawRow(index=2, cells=("2024/02/03", "", "", "", "", "970.00", "利息", ""))
    assert normalize_boc(row) is None


# ---- parse stage -------------------------------------------------------------


def _wechat_csv(*lines: str) -> bytes:
    return "\n".join(["微信支付账单明细", ",".join(WECHAT_COLUMNS), *lines]).encode("utf-8")


def test_parse_document_counts_skipped_rows():
    data = _wechat_csv(
        "2024-01-05 12:00:00,商户消费,Coffee,Latte,支出,¥12.50,零钱,支付成功,T1,M1,/",
        "2024-01-05 13:00:00,零钱提现,Bank,/,/,¥50.00,零钱,提现成功,T2,,/",
    )
    result = parse_document(RawDocument(data, DocumentKind.CSV, "wx.csv"), Provider.WECHAT)
    assert (result.parsed, result.skipped, len(result.records)) == (2, 1, 1)
    assert result.filename == "wx.csv"


def test_parse_document_reports_bad_row_with_index():
    data = _wechat_csv("2024-01-05 12:00:00,商户消费,Coffee,Latte,支出,twelve,零钱,支付成功,T1,M1,/")
    with pytest.raises(ValidationError) as exc:
        parse_document(RawDocument(data, DocumentKind.CSV, "wx.csv"), Provider.WECHAT)
    assert exc.value.row_index == 3
    assert str(exc.value).startswith("wx.csv: row 3: invalid amount")


def test_parse_document_rejects_wrong_kind_and_manual_provider():
    doc = RawDocument(b"%PDF-1.4", DocumentKind.PDF, "wx.pdf")
    with pytest.raises(DecodeError) as exc:
        parse_document(doc, Provider.WECHAT)
    assert "must be CSV, XLSX files" in str(exc.value)
    with pytest.raises(ValueError):
        parse_document(doc, Provider.MANUAL)


def test_row_with_unrecognized_date_is_rejected_not_dropped():
    data = _wechat_csv(
        "2024-01-05 12:00:00,商户消费,Coffee,Latte,支出,¥12.50,零钱,支付成功,T1,M1,/",
        "2024年01月06日 10:00,商户消费,Shop,Tea,支出,¥20.00,零钱,支付成功,T2,M2,/",
    )
    with pytest.raises(ValidationError) as exc:
        parse_document(RawDocument(data, DocumentKind.CSV, "wx.csv"), Provider.WECHAT)
    assert exc.value.row_index == 4
    assert "invalid date" in str(exc.value)


def test_non_date_rows_with_content_are_counted():
    data = _wechat_csv(
        "2024-01-05 12:00:00,商户消费,Coffee,Latte,支出,¥12.50,零钱,支付成功,T1,M1,/",
        "已支出:1笔,12.50元",
        "共1笔记录",
    )
    result = parse_document(RawDocument(data, DocumentKind.CSV, "wx.csv"), Provider.WECHAT)
    assert (result.parsed, result.skipped, len(result.records)) == (2, 1, 1)
