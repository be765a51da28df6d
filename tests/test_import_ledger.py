"""End-to-end imports against a temporary SQLite ledger."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from statement_import import (
    ImportSettings,
    NoAccountError,
    PartialCommitError,
    SqlLedgerStore,
    StoreError,
    import_statement,
    parse_document,
)
from statement_import.fingerprints import fingerprint_v1, fingerprint_v2
from statement_import.models import DocumentKind, Provider, RawDocument
from statement_import.providers import ALIPAY_COLUMNS, WECHAT_COLUMNS
from statement_import.store import FieldKey, InsertOutcome, NewTransaction
from tests.helpers.db import (
    account_balance,
    add_transaction,
    category_names,
    seed_owner,
    transactions_for,
)

OWNER = "user-1"
SETTINGS = ImportSettings()

WECHAT_ROWS = (
    "2024-01-05 09:00:00,转账,Alice,/,收入,¥100.00,零钱,已收钱,T1,/,/",
    "2024-01-05 12:30:00,商户消费,Coffee Co,Latte,支出,¥50.00,零钱,支付成功,T2,M2,/",
    "2024-01-06 10:00:00,零钱充值,招商银行,/,/,¥200.00,招商银行,充值完成,T3,/,/",
)


def _wechat_csv(rows: Sequence[str] = WECHAT_ROWS) -> bytes:
    lines = ["微信支付账单明细", "微信昵称：[someone]", ",".join(WECHAT_COLUMNS), *rows]
    return "\n".join(lines).encode("utf-8")


def _alipay_csv() -> bytes:
    lines = [
        "支付宝交易记录明细查询",
        ",".join(ALIPAY_COLUMNS),
        "2024-02-01 09:15:00,服饰装扮,优衣库,,T恤,支出,99.00,花呗,交易成功,A1,B1,",
        "2024-02-01 12:00:00,餐饮美食,早餐店,,包子,支出,6.50,余额宝,交易成功,A2,B2,",
    ]
    return "\n".join(lines).encode("gb18030")


@pytest.fixture
def wechat_file(tmp_path: Path) -> Path:
    path = tmp_path / "wechat.csv"
    path.write_bytes(_wechat_csv())
    return path


@pytest.fixture
def wallet_account(db_url: str) -> int:
    (account_id,) = seed_owner(db_url, OWNER, accounts=(("微信零钱", "wechat", "1000"),))
    return account_id


def _import(db_url: str, source, *, provider=Provider.WECHAT, store=None, settings=SETTINGS, **kw):
    return import_statement(
        source,
        provider=provider,
        owner_id=OWNER,
        store=store,
        settings=settings,
        database_url=db_url,
        **kw,
    )


def _records(data: bytes, provider: Provider = Provider.WECHAT):
    return parse_document(RawDocument(data, DocumentKind.CSV, "s.csv"), provider).records


# ---- happy path ----------------------------------------------------------------


def test_wechat_import_commits_rows_and_moves_balance(db_url, wallet_account, wechat_file):
    report = _import(db_url, wechat_file)

    assert (report.parsed, report.skipped, report.deduplicated, report.committed) == (3, 1, 0, 2)
    assert report.account_id == wallet_account
    assert report.balance_delta == Decimal("50.00")
    assert report.created_category_ids == ()
    assert account_balance(db_url, wallet_account) == Decimal("1050.00")

    rows = transactions_for(db_url, OWNER)
    assert [r.id for r in rows] == list(report.committed_ids)
    assert [(r.type, r.amount, r.description) for r in rows] == [
        ("income", Decimal("100.00"), "Alice"),
        ("expense", Decimal("-50.00"), "Latte"),
    ]
    assert {r.source for r in rows} == {"wechat"}
    assert rows[1].date == date(2024, 1, 5)
    expected = [fingerprint_v2(r) for r in _records(_wechat_csv())]
    assert [r.unique_hash for r in rows] == expected


def test_reimport_commits_nothing(db_url, wallet_account, wechat_file):
    _import(db_url, wechat_file)
    again = _import(db_url, wechat_file)

    assert (again.committed, again.deduplicated, again.skipped) == (0, 2, 1)
    assert again.dedup_reasons == {"fingerprint": 2}
    assert again.balance_delta == Decimal("0.00")
    assert again.undo() is False
    assert account_balance(db_url, wallet_account) == Decimal("1050.00")
    assert len(transactions_for(db_url, OWNER)) == 2


def test_categories_map_to_seeded_income_and_shopping(db_url, wallet_account, wechat_file):
    _import(db_url, wechat_file)
    rows = transactions_for(db_url, OWNER)
    store = SqlLedgerStore(database_url=db_url)
    names = {c.id: (c.type, c.name) for c in store.find_categories_by_owner(OWNER)}
    assert [names[r.category_id] for r in rows] == [("income", "工资"), ("expense", "购物")]


# ---- undo ----------------------------------------------------------------------


def test_undo_restores_ledger_and_is_one_shot(db_url, wallet_account, wechat_file):
    report = _import(db_url, wechat_file)

    assert report.undo() is True
    assert account_balance(db_url, wallet_account) == Decimal("1000.00")
    assert transactions_for(db_url, OWNER) == []

    assert report.undo() is False
    assert account_balance(db_url, wallet_account) == Decimal("1000.00")


def test_undo_removes_only_categories_created_by_the_import(db_url, tmp_path):
    (account_id,) = seed_owner(db_url, OWNER, accounts=(("支付宝", "alipay", "500"),))
    path = tmp_path / "alipay.csv"
    path.write_bytes(_alipay_csv())

    report = _import(db_url, path, provider=Provider.ALIPAY)
    assert report.committed == 2
    assert len(report.created_category_ids) == 1
    assert ("expense", "其他") in category_names(db_url, OWNER)
    assert account_balance(db_url, account_id) == Decimal("394.50")

    assert report.undo() is True
    names = category_names(db_url, OWNER)
    assert ("expense", "其他") not in names
    assert ("expense", "餐饮") in names
    assert account_balance(db_url, account_id) == Decimal("500.00")


def test_undo_keeps_created_category_that_gained_a_reference(db_url, tmp_path):
    (account_id,) = seed_owner(db_url, OWNER, accounts=(("支付宝", "alipay", "0"),))
    path = tmp_path / "alipay.csv"
    path.write_bytes(_alipay_csv())
    report = _import(db_url, path, provider=Provider.ALIPAY)
    (created,) = report.created_category_ids

    # The user files a manual expense under the new category before undoing.
    add_transaction(
        db_url,
        OWNER,
        account_id,
        amount="-1",
        on=date(2024, 2, 2),
        description="socks",
        category_id=created,
    )

    assert report.undo() is True
    assert ("expense", "其他") in category_names(db_url, OWNER)
    assert [t.description for t in transactions_for(db_url, OWNER)] == ["socks"]


# ---- dedup ---------------------------------------------------------------------


def test_legacy_fingerprint_is_recognized(db_url, wallet_account, wechat_file):
    income, _expense = _records(_wechat_csv())
    add_transaction(
        db_url,
        OWNER,
        wallet_account,
        amount="100",
        on=income.date,
        description="imported long ago",
        unique_hash=fingerprint_v1(income),
        source="wechat",
    )

    report = _import(db_url, wechat_file)
    assert report.dedup_reasons == {"fingerprint": 1}
    assert report.committed == 1
    assert report.parsed == report.skipped + report.deduplicated + report.committed


def test_field_match_catches_rows_without_fingerprint(db_url, wallet_account, wechat_file):
    add_transaction(
        db_url, OWNER, wallet_account, amount="-50.00", on=date(2024, 1, 5), description="Latte"
    )
    report = _import(db_url, wechat_file)
    assert report.dedup_reasons == {"fields": 1}
    assert report.committed == 1


def test_field_match_requires_same_description(db_url, wallet_account, wechat_file):
    add_transaction(
        db_url, OWNER, wallet_account, amount="-50.00", on=date(2024, 1, 5), description="Tea"
    )
    assert _import(db_url, wechat_file).committed == 2


def test_duplicate_rows_in_one_file_keep_the_first(db_url, wallet_account, tmp_path):
    path = tmp_path / "dup.csv"
    path.write_bytes(_wechat_csv([*WECHAT_ROWS, WECHAT_ROWS[1].replace("T2,M2", "T9,M9")]))
    report = _import(db_url, path)
    assert (report.parsed, report.skipped, report.deduplicated, report.committed) == (4, 1, 1, 2)
    assert report.dedup_reasons == {"in_batch": 1}


def test_soft_deleted_rows_do_not_block_reimport(db_url, wallet_account, wechat_file):
    for rec in _records(_wechat_csv()):
        add_transaction(
            db_url,
            OWNER,
            wallet_account,
            amount=str(rec.signed_amount),
            on=rec.date,
            description=rec.description,
            unique_hash=fingerprint_v2(rec),
            is_deleted=True,
            source="wechat",
        )
    report = _import(db_url, wechat_file)
    assert report.committed == 2
    assert len(transactions_for(db_url, OWNER)) == 4


def test_other_owners_rows_never_count_as_duplicates(db_url, wallet_account, wechat_file):
    seed_owner(db_url, "user-2", accounts=(("微信", "wechat", "0"),))
    import_statement(
        wechat_file, provider="wechat", owner_id="user-2", settings=SETTINGS, database_url=db_url
    )
    assert _import(db_url, wechat_file).committed == 2


class _BlindStore(SqlLedgerStore):
    """Sees no existing rows, like a concurrent import that read before the other committed."""

    def find_transactions_by_fingerprints(
        self, owner_id: str, fingerprints: Iterable[str]
    ) -> set[str]:
        return set()

    def find_transactions_by_fields(self, owner_id: str, dates: Iterable[date]) -> list[FieldKey]:
        return []


def test_store_conflict_is_counted_not_fatal(db_url, wallet_account, wechat_file):
    _import(db_url, wechat_file)
    report = _import(db_url, wechat_file, store=_BlindStore(database_url=db_url))

    assert report.committed == 0
    assert report.dedup_reasons == {"store_conflict": 2}
    assert report.parsed == report.skipped + report.deduplicated + report.committed
    assert account_balance(db_url, wallet_account) == Decimal("1050.00")


def test_store_conflict_on_some_rows_commits_the_rest(db_url, wallet_account, tmp_path):
    first = tmp_path / "first.csv"
    first.write_bytes(_wechat_csv(WECHAT_ROWS[:1]))
    _import(db_url, first)

    full = tmp_path / "full.csv"
    full.write_bytes(_wechat_csv())
    report = _import(db_url, full, store=_BlindStore(database_url=db_url))
    assert report.committed == 1
    assert report.dedup_reasons == {"store_conflict": 1}
    assert report.balance_delta == Decimal("-50.00")
    assert account_balance(db_url, wallet_account) == Decimal("1050.00")


def _new_tx(account_id: int, category_id: int, unique_hash: str | None) -> NewTransaction:
    return NewTransaction(
        account_id=account_id,
        category_id=category_id,
        amount=Decimal("-5.00"),
        type="expense",
        date=date(2024, 1, 5),
        occurred_at=None,
        description="tea",
        source="wechat",
        unique_hash=unique_hash,
    )


def test_insert_rejects_only_taken_fingerprints(store, wallet_account):
    category_id = store.find_categories_by_owner(OWNER)[0].id
    store.insert_transactions(OWNER, [_new_tx(wallet_account, category_id, "h1")])

    outcome = store.insert_transactions(
        OWNER,
        [_new_tx(wallet_account, category_id, "h1"), _new_tx(wallet_account, category_id, "h2")],
    )
    assert outcome.rejected == (0,)
    assert len(outcome.ids) == 1


def test_insert_with_unknown_category_raises(store, db_url, wallet_account):
    with pytest.raises(StoreError, match="rejected row 0"):
        store.insert_transactions(OWNER, [_new_tx(wallet_account, 999999, "h1")])
    assert transactions_for(db_url, OWNER) == []


# ---- failures ------------------------------------------------------------------


class _FailingStore(SqlLedgerStore):
    """Fails the ``fail_on``-th insert call (1-based)."""

    def __init__(self, *, database_url: str, fail_on: int) -> None:
        super().__init__(database_url=database_url)
        self.fail_on = fail_on
        self.calls = 0

    def insert_transactions(self, owner_id: str, rows: Sequence[NewTransaction]) -> InsertOutcome:
        self.calls += 1
        if self.calls == self.fail_on:
            raise StoreError("disk full")
        return super().insert_transactions(owner_id, rows)


def test_partial_commit_keeps_committed_chunks_and_offers_undo(db_url, wallet_account, wechat_file):
    store = _FailingStore(database_url=db_url, fail_on=2)
    with pytest.raises(PartialCommitError) as exc:
        _import(db_url, wechat_file, store=store, settings=ImportSettings(chunk_size=1))

    err = exc.value
    assert err.chunks_committed == 1
    assert len(err.committed_ids) == 1
    assert err.filename == "wechat.csv"
    assert [r.id for r in transactions_for(db_url, OWNER)] == list(err.committed_ids)
    assert account_balance(db_url, wallet_account) == Decimal("1100.00")

    assert err.undo() is True
    assert transactions_for(db_url, OWNER) == []
    assert account_balance(db_url, wallet_account) == Decimal("1000.00")


def test_failure_in_first_chunk_writes_nothing(db_url, wallet_account, wechat_file):
    store = _FailingStore(database_url=db_url, fail_on=1)
    with pytest.raises(PartialCommitError) as exc:
        _import(db_url, wechat_file, store=store)
    assert exc.value.chunks_committed == 0
    assert exc.value.committed_ids == ()
    assert transactions_for(db_url, OWNER) == []
    assert account_balance(db_url, wallet_account) == Decimal("1000.00")


def test_owner_without_accounts_cannot_import(db_url, wechat_file):
    seed_owner(db_url, OWNER, accounts=())
    with pytest.raises(NoAccountError):
        _import(db_url, wechat_file)
    assert transactions_for(db_url, OWNER) == []


def test_account_id_must_belong_to_owner(db_url, wallet_account, wechat_file):
    (foreign,) = seed_owner(db_url, "user-2", accounts=(("微信", "wechat", "0"),))
    with pytest.raises(NoAccountError, match=f"account {foreign} does not exist"):
        _import(db_url, wechat_file, account_id=foreign)


def test_explicit_account_id_overrides_matching(db_url, wechat_file):
    wx, cash = seed_owner(db_url, OWNER, accounts=(("微信", "wechat", "0"), ("现金", "cash", "0")))
    report = _import(db_url, wechat_file, account_id=cash)
    assert report.account_id == cash
    assert account_balance(db_url, cash) == Decimal("50.00")
    assert account_balance(db_url, wx) == Decimal("0.00")
