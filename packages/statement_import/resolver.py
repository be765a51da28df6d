"""Target account and category resolution.

Account: an explicit ``account_id`` wins; otherwise the first account whose
type or name matches the provider, then a generic cash/bank account, then
(if ``settings.account_fallback == "first"``) the owner's first account.

Category: deliberately coarse; users recategorize after import. Missing
categories are created on demand and their IDs returned so an undo can remove
them again when nothing references them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .errors import NoAccountError
from .logging_setup import get_logger
from .models import Direction, ParsedRecord, Provider
from .providers import ProviderProfile
from .settings import ImportSettings
from .store import AccountRow, CategorySpec, LedgerStore

logger = get_logger(__name__)

# Alipay's own 交易分类 buckets that map onto seeded categories.
_ALIPAY_KEYWORDS: tuple[str, ...] = ("餐饮", "交通")
_WECHAT_EXPENSE = "购物"


def _matches(account: AccountRow, types: Sequence[str], keywords: Sequence[str]) -> bool:
    return account.type in types or any(k in account.name for k in keywords)


def resolve_account(
    accounts: Sequence[AccountRow],
    profile: ProviderProfile,
    settings: ImportSettings,
    *,
    account_id: int | None = None,
) -> AccountRow:
    """Pick the account an import lands in.

    Raises
    ------
    NoAccountError
        The owner has no accounts, ``account_id`` is not theirs, or nothing
        matched and the fallback policy is ``"none"``.
    """

    if not accounts:
        raise NoAccountError("create an account before importing statements")
    if account_id is not None:
        for acc in accounts:
            if acc.id == account_id:
                return acc
        raise NoAccountError(f"account {account_id} does not exist for this owner")

    for acc in accounts:
        if _matches(acc, profile.account_types, profile.account_keywords):
            return acc
    for acc in accounts:
        if _matches(acc, profile.fallback_types, profile.fallback_keywords):
            return acc
    if settings.account_fallback == "first":
        logger.info("no %s account found; using %r", profile.provider.value, accounts[0].name)
        return accounts[0]
    raise NoAccountError(f"no account matches provider {profile.provider.value}")


def category_for(record: ParsedRecord, settings: ImportSettings) -> tuple[str, str]:
    """Return ``(type, name)`` of the category a record belongs in."""

    if record.direction is Direction.INCOME:
        return ("income", settings.income_category)
    if record.source_provider is Provider.WECHAT:
        return ("expense", _WECHAT_EXPENSE)
    if record.source_provider is Provider.ALIPAY:
        for word in _ALIPAY_KEYWORDS:
            if word in record.category_hint:
                return ("expense", word)
    return ("expense", settings.fallback_expense_category)


@dataclass(frozen=True, slots=True)
class CategoryResolution:
    """Category ID per record (input order) and the IDs created for this import."""

    category_ids: tuple[int, ...]
    created_ids: tuple[int, ...]


def resolve_categories(
    store: LedgerStore,
    owner_id: str,
    records: Sequence[ParsedRecord],
    settings: ImportSettings,
) -> CategoryResolution:
    wanted = [category_for(r, settings) for r in records]
    if not wanted:
        return CategoryResolution(category_ids=(), created_ids=())

    by_key: dict[tuple[str, str], int] = {}
    for cat in store.find_categories_by_owner(owner_id):
        by_key.setdefault((cat.type, cat.name), cat.id)

    missing = [key for key in dict.fromkeys(wanted) if key not in by_key]
    created: list[int] = []
    if missing:
        specs = [
            CategorySpec(
                name=name,
                type=cat_type,
                icon=settings.category_icon,
                color=settings.category_color,
            )
            for cat_type, name in missing
        ]
        for row in store.create_categories(owner_id, specs):
            by_key[(row.type, row.name)] = row.id
            created.append(row.id)
        logger.info("created categories: %s", ", ".join(name for _, name in missing))

    return CategoryResolution(
        category_ids=tuple(by_key[key] for key in wanted),
        created_ids=tuple(created),
    )


__all__ = ["resolve_account", "category_for", "CategoryResolution", "resolve_categories"]
