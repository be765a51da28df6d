"""Typed failures raised by the import engine.

Every error carries optional ``filename`` and ``row_index`` context so callers
can tell the user which file (and which statement row) needs attention.
Parse-stage errors (decode, auth, header, validation) are raised before any
write; commit-stage errors wrap the ledger store's exceptions.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence


class StatementImportError(Exception):
    """Base class for all import failures."""

    def __init__(
        self,
        message: str,
        *,
        filename: str | None = None,
        row_index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.row_index = row_index

    def __str__(self) -> str:
        parts: list[str] = []
        if self.filename:
            parts.append(self.filename)
        if self.row_index is not None:
            parts.append(f"row {self.row_index}")
        if not parts:
            return self.message
        return f"{': '.join(parts)}: {self.message}"


class DecodeError(StatementImportError):
    """No candidate text encoding produced a recognizable statement."""


class AuthError(StatementImportError):
    """The PDF is encrypted and the password is missing or wrong."""


class HeaderNotFoundError(StatementImportError):
    """The expected column header (or mandatory date anchor) was not found."""


class NoAccountError(StatementImportError):
    """The owner has no account the import could target."""


class ValidationError(StatementImportError):
    """A row produced an amount or date that cannot be used."""


class StoreError(StatementImportError):
    """The ledger store failed (I/O or an unexpected constraint)."""


class PartialCommitError(StoreError):
    """A chunk failed after earlier chunks were committed.

    ``undo`` reverses exactly the committed rows (the balance delta for them has
    already been applied). The engine never runs it on its own.
    """

    def __init__(
        self,
        message: str,
        *,
        chunks_committed: int,
        committed_ids: Sequence[int],
        undo: Callable[[], bool],
        filename: str | None = None,
    ) -> None:
        super().__init__(message, filename=filename)
        self.chunks_committed = chunks_committed
        self.committed_ids = tuple(committed_ids)
        self.undo = undo


__all__ = [
    "StatementImportError",
    "DecodeError",
    "AuthError",
    "HeaderNotFoundError",
    "NoAccountError",
    "ValidationError",
    "StoreError",
    "PartialCommitError",
]
