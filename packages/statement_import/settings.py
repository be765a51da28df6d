"""Runtime knobs for the import engine.

Values come from ``STATEMENT_IMPORT_*`` environment variables (a local ``.env``
is loaded first without overriding the real environment). The ledger database
itself is selected by ``DATABASE_URL``, read by :mod:`ledger_db.client`.
"""

from __future__ import annotations

import os
from typing import Literal

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

_ENV_PREFIX = "STATEMENT_IMPORT_"


class ImportSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    chunk_size: int = Field(default=500, gt=0)
    # Advisory: how long a UI should offer the undo action after a commit.
    undo_window_seconds: float = Field(default=5.0, ge=0)
    # What to do when no account matches the provider: take the owner's first
    # account, or refuse with NoAccountError.
    account_fallback: Literal["first", "none"] = "first"
    income_category: str = "工资"
    fallback_expense_category: str = "其他"
    category_icon: str = "📂"
    category_color: str = "#6B7280"


def load_settings(**overrides: object) -> ImportSettings:
    """Build :class:`ImportSettings` from the environment plus explicit overrides.

    Only fields that are actually set in the environment are passed through, so
    model defaults apply otherwise. Keyword ``overrides`` win over both.
    """

    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    values: dict[str, object] = {}
    for name in ImportSettings.model_fields:
        raw = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
        if raw is not None and raw.strip() != "":
            values[name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})
    # Env values are strings; lax validation coerces them to the field types.
    return ImportSettings.model_validate(values)


__all__ = ["ImportSettings", "load_settings"]
