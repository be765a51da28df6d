"""Per-owner default rows: the cash account and the system categories.

New owners start with one ``现金`` account and a fixed set of system categories
so an import always has somewhere to land.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models.ledger import LedgerAccount, LedgerCategory

DEFAULT_ACCOUNT: tuple[str, str, str, str] = ("现金", "cash", "💵", "#10B981")

DEFAULT_CATEGORIES: tuple[tuple[str, str, str, str], ...] = (
    ("餐饮", "expense", "🍜", "#EF4444"),
    ("交通", "expense", "🚇", "#F59E0B"),
    ("购物", "expense", "🛍️", "#8B5CF6"),
    ("娱乐", "expense", "🎮", "#EC4899"),
    ("医疗", "expense", "💊", "#14B8A6"),
    ("工资", "income", "💰", "#10B981"),
    ("奖金", "income", "🎁", "#3B82F6"),
    ("投资", "income", "📈", "#6366F1"),
)


def seed_owner_defaults(session: Session, owner_id: str) -> bool:
    """Insert the default account and system categories for ``owner_id``.

    Returns False (and writes nothing) when the owner already has any account.
    """

    existing = session.scalar(
        select(LedgerAccount.id).where(LedgerAccount.owner_id == owner_id).limit(1)
    )
    if existing is not None:
        return False

    name, acc_type, icon, color = DEFAULT_ACCOUNT
    session.add(LedgerAccount(owner_id=owner_id, name=name, type=acc_type, icon=icon, color=color))
    for cat_name, cat_type, cat_icon, cat_color in DEFAULT_CATEGORIES:
        session.add(
            LedgerCategory(
                owner_id=owner_id,
                name=cat_name,
                type=cat_type,
                icon=cat_icon,
                color=cat_color,
                is_system=True,
            )
        )
    session.flush()
    return True


__all__ = ["DEFAULT_ACCOUNT", "DEFAULT_CATEGORIES", "seed_owner_defaults"]
