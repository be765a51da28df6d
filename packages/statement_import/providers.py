"""Provider profiles: the closed set of statement layouts the engine understands.

Each :class:`ProviderProfile` bundles how a provider's file is laid out (CSV/XLSX
header or PDF anchors), how one of its rows becomes a :class:`ParsedRecord`,
and which ledger accounts it naturally belongs to. Supporting a new statement
format means adding one profile to :data:`PROFILES`.

Usage
-----
result = parse_document(RawDocument.from_path("wechat.csv"), Provider.WECHAT)
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

from .errors import DecodeError, ValidationError
from .ingest.csv_table import TableLayout, extract_csv_table
from .ingest.detect import decode_text
from .ingest.pdf_table import ColumnSpec, PdfLayout, extract_pdf_table
from .ingest.xlsx_table import extract_xlsx_table
from .logging_setup import get_logger
from .models import DocumentKind, ParsedRecord, ParseResult, Provider, RawDocument, RawRow
from .normalizers import (
    RowNormalizer,
    normalize_alipay,
    normalize_boc,
    normalize_cmb,
    normalize_wechat,
)

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ProviderProfile:
    """Everything provider-specific about importing one statement.

    Attributes
    ----------
    family:
        ``"wallet"`` (payment apps) or ``"bank"``; drives the generic account
        fallback and whether order IDs take part in legacy fingerprints.
    table / pdf:
        Layout for tabular exports and for PDF statements (either may be None).
    account_types / account_keywords:
        Account ``type`` values and name substrings that mark an account as
        belonging to this provider.
    fallback_types / fallback_keywords:
        The generic account to use when no provider account exists.
    """

    provider: Provider
    family: Literal["wallet", "bank"]
    normalize: RowNormalizer
    account_types: tuple[str, ...]
    account_keywords: tuple[str, ...]
    fallback_types: tuple[str, ...]
    fallback_keywords: tuple[str, ...] = ()
    table: TableLayout | None = None
    pdf: PdfLayout | None = None

    @property
    def kinds(self) -> frozenset[DocumentKind]:
        kinds: set[DocumentKind] = set()
        if self.table is not None:
            kinds.update({DocumentKind.CSV, DocumentKind.XLSX})
        if self.pdf is not None:
            kinds.add(DocumentKind.PDF)
        return frozenset(kinds)


# ---------------------------------------------------------------------------
# Layouts
# ---------------------------------------------------------------------------

WECHAT_COLUMNS: tuple[str, ...] = (
    "交易时间",
    "交易类型",
    "交易对方",
    "商品",
    "收/支",
    "金额(元)",
    "支付方式",
    "当前状态",
    "交易单号",
    "商户单号",
    "备注",
)

ALIPAY_COLUMNS: tuple[str, ...] = (
    "交易时间",
    "交易分类",
    "交易对方",
    "对方账号",
    "商品说明",
    "收/支",
    "金额",
    "收/付款方式",
    "交易状态",
    "交易订单号",
    "商家订单号",
    "备注",
)

CMB_LAYOUT = PdfLayout(
    columns=(
        ColumnSpec("date", ("记账日期",)),
        ColumnSpec("currency", ("货币",), fallback_x=98.74),
        ColumnSpec("amount", ("交易金额",), fallback_x=156.26),
        ColumnSpec("balance", ("联机余额",), fallback_x=234.71),
        ColumnSpec("summary", ("交易摘要",), fallback_x=307.88),
        ColumnSpec("counterparty", ("对手信息",), fallback_x=417.64),
    ),
    tolerance=2.5,
    date_pattern=re.compile(r"^\d{4}-\d{2}-\d{2}$"),
)

BOC_LAYOUT = PdfLayout(
    columns=(
        ColumnSpec("date", ("交易日期", "记账日期", "日期")),
        ColumnSpec("currency", ("币种", "币别", "币种名称")),
        ColumnSpec("debit", ("借方金额", "借方发生额", "支出")),
        ColumnSpec("credit", ("贷方金额", "贷方发生额", "收入")),
        ColumnSpec("amount", ("金额",)),
        ColumnSpec("balance", ("余额", "可用余额", "当前余额")),
        ColumnSpec("summary", ("摘要", "交易摘要", "附言")),
        ColumnSpec("counterparty", ("对方信息", "对方户名", "对方名称", "交易对手")),
    ),
    tolerance=3.0,
    date_pattern=re.compile(r"^\d{4}[-/.]\d{2}[-/.]\d{2}(?:\s+\d{2}:\d{2}(?::\d{2})?)?$"),
)


PROFILES: Mapping[Provider, ProviderProfile] = MappingProxyType(
    {
        Provider.WECHAT: ProviderProfile(
            provider=Provider.WECHAT,
            family="wallet",
            normalize=normalize_wechat,
            account_types=("wechat",),
            account_keywords=("微信",),
            fallback_types=("cash",),
            fallback_keywords=("现金",),
            table=TableLayout(
                columns=WECHAT_COLUMNS,
                encodings=("utf-8-sig", "gb18030"),
                anchors=("交易时间", "微信"),
            ),
        ),
        Provider.ALIPAY: ProviderProfile(
            provider=Provider.ALIPAY,
            family="wallet",
            normalize=normalize_alipay,
            account_types=("alipay",),
            account_keywords=("支付宝",),
            fallback_types=("cash",),
            fallback_keywords=("现金",),
            table=TableLayout(
                columns=ALIPAY_COLUMNS,
                encodings=("gb18030", "gbk", "gb2312", "utf-8"),
                anchors=("支付宝", "交易时间"),
            ),
        ),
        Provider.CMB: ProviderProfile(
            provider=Provider.CMB,
            family="bank",
            normalize=normalize_cmb,
            account_types=(),
            account_keywords=("招商银行", "招商", "CMB"),
            fallback_types=("bank",),
            pdf=CMB_LAYOUT,
        ),
        Provider.BOC: ProviderProfile(
            provider=Provider.BOC,
            family="bank",
            normalize=normalize_boc,
            account_types=(),
            account_keywords=("中国银行", "中行", "BOC"),
            fallback_types=("bank",),
            pdf=BOC_LAYOUT,
        ),
    }
)


def get_profile(provider: Provider | str) -> ProviderProfile:
    p = Provider(provider)
    try:
        return PROFILES[p]
    except KeyError:
        raise ValueError(f"provider has no import layout: {p.value!r}") from None


# ---------------------------------------------------------------------------
# Parse stage
# ---------------------------------------------------------------------------


def extract_rows(doc: RawDocument, profile: ProviderProfile) -> list[RawRow]:
    """Run the detector and the extractor that fit ``doc.kind``."""

    name = doc.filename or None
    # kinds only lists what the profile has a layout for.
    if doc.kind not in profile.kinds:
        expected = ", ".join(sorted(k.value.upper() for k in profile.kinds))
        raise DecodeError(
            f"{profile.provider.value} statements must be {expected} files",
            filename=name,
        )
    if doc.kind is DocumentKind.PDF:
        return extract_pdf_table(doc.data, profile.pdf, password=doc.password, filename=name)
    if doc.kind is DocumentKind.XLSX:
        return extract_xlsx_table(doc.data, profile.table, filename=name)
    text = decode_text(
        doc.data,
        encodings=profile.table.encodings,
        anchors=profile.table.anchors,
        filename=name,
    )
    return extract_csv_table(text, profile.table, filename=name)


def parse_document(doc: RawDocument, provider: Provider | str) -> ParseResult:
    """Detect, extract and normalize ``doc``; nothing is written anywhere.

    Raises
    ------
    DecodeError, AuthError, HeaderNotFoundError
        The file could not be read as this provider's statement.
    ValidationError
        A row carries an amount or date that cannot be parsed.
    """

    profile = get_profile(provider)
    rows = extract_rows(doc, profile)
    records: list[ParsedRecord] = []
    skipped = 0
    for row in rows:
        try:
            record = profile.normalize(row)
        except ValueError as exc:
            raise ValidationError(
                str(exc), filename=doc.filename or None, row_index=row.index
            ) from exc
        if record is None:
            skipped += 1
            logger.debug("row %d skipped (neutral or zero amount)", row.index)
            continue
        records.append(record)

    logger.info(
        "parsed %s as %s: %d rows, %d records, %d skipped",
        doc.filename or "<bytes>",
        profile.provider.value,
        len(rows),
        len(records),
        skipped,
    )
    return ParseResult(
        provider=profile.provider,
        records=tuple(records),
        parsed=len(rows),
        skipped=skipped,
        filename=doc.filename,
    )


__all__ = [
    "ProviderProfile",
    "PROFILES",
    "WECHAT_COLUMNS",
    "ALIPAY_COLUMNS",
    "CMB_LAYOUT",
    "BOC_LAYOUT",
    "get_profile",
    "extract_rows",
    "parse_document",
]
