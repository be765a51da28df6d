"""Public interface for the ``statement_import`` package.

Re-exports the import API, the data shapes passed between stages, and the
error taxonomy. No runtime logic lives here.
"""

from .errors import (
    AuthError,
    DecodeError,
    HeaderNotFoundError,
    NoAccountError,
    PartialCommitError,
    StatementImportError,
    StoreError,
    ValidationError,
)
from .models import (
    Direction,
    DocumentKind,
    ImportReport,
    ParsedRecord,
    ParseResult,
    PositionedGlyph,
    Provider,
    RawDocument,
    RawRow,
)
from .providers import parse_document
from .session import ImportSession, ImportState, import_statement
from .settings import ImportSettings, load_settings
from .store import LedgerStore, SqlLedgerStore

__all__ = [
    # API
    "import_statement",
    "parse_document",
    "ImportSession",
    "ImportState",
    "ImportSettings",
    "load_settings",
    "LedgerStore",
    "SqlLedgerStore",
    # Models / types
    "Provider",
    "DocumentKind",
    "Direction",
    "RawDocument",
    "PositionedGlyph",
    "RawRow",
    "ParsedRecord",
    "ParseResult",
    "ImportReport",
    # Errors
    "StatementImportError",
    "DecodeError",
    "AuthError",
    "HeaderNotFoundError",
    "NoAccountError",
    "StoreError",
    "ValidationError",
    "PartialCommitError",
]
