"""Per-import state machine and the one-call import API.

States::

    SELECTING -> PARSING -> PARSED -> COMMITTING -> COMMITTED -> UNDO_COMPLETE
                    |                    |              \\-> EXPIRED
                    \\-> SELECTING        \\-> PARSED (commit failed)

Parse failures (decode, auth, header, validation) return the session to
``SELECTING`` before re-raising; nothing has been written at that point. The
undo window is advisory: :meth:`ImportSession.undo_available` tells a UI
whether to still offer the action, but the handle itself never expires.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path

from .commit import PlannedRow, commit_batch
from .dedup import REASON_STORE_CONFLICT, DedupResult, deduplicate
from .logging_setup import get_logger
from .models import ImportReport, ParseResult, Provider, RawDocument
from .providers import get_profile, parse_document
from .resolver import resolve_account, resolve_categories
from .settings import ImportSettings, load_settings
from .store import LedgerStore, SqlLedgerStore

logger = get_logger(__name__)


class ImportState(StrEnum):
    SELECTING = "selecting"
    PARSING = "parsing"
    PARSED = "parsed"
    COMMITTING = "committing"
    COMMITTED = "committed"
    UNDO_COMPLETE = "undo_complete"
    EXPIRED = "expired"


_TRANSITIONS: dict[ImportState, frozenset[ImportState]] = {
    ImportState.SELECTING: frozenset({ImportState.PARSING}),
    ImportState.PARSING: frozenset({ImportState.PARSED, ImportState.SELECTING}),
    ImportState.PARSED: frozenset({ImportState.COMMITTING, ImportState.SELECTING}),
    ImportState.COMMITTING: frozenset({ImportState.COMMITTED, ImportState.PARSED}),
    ImportState.COMMITTED: frozenset({ImportState.UNDO_COMPLETE, ImportState.EXPIRED}),
    ImportState.UNDO_COMPLETE: frozenset(),
    ImportState.EXPIRED: frozenset(),
}


class ImportSession:
    """Drive one statement import from file selection to commit and undo.

    Usage
    -----
    session = ImportSession(store, owner_id="u1")
    session.select(RawDocument.from_path("alipay.csv"), Provider.ALIPAY)
    session.parse()
    report = session.commit()
    if user_clicked_undo and session.undo_available():
        session.undo()
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        owner_id: str,
        settings: ImportSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.owner_id = owner_id
        self.settings = settings or ImportSettings()
        self._clock = clock
        self._state = ImportState.SELECTING
        self._document: RawDocument | None = None
        self._provider: Provider | None = None
        self._account_id: int | None = None
        self._parsed: ParseResult | None = None
        self._report: ImportReport | None = None
        self._committed_at: float | None = None

    # -- state -----------------------------------------------------------------

    @property
    def state(self) -> ImportState:
        return self._state

    @property
    def parsed(self) -> ParseResult | None:
        return self._parsed

    @property
    def report(self) -> ImportReport | None:
        return self._report

    def _move(self, target: ImportState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"illegal import transition {self._state.value} -> {target.value}"
            )
        logger.debug("import state %s -> %s", self._state.value, target.value)
        self._state = target

    # -- steps -----------------------------------------------------------------

    def select(
        self,
        document: RawDocument,
        provider: Provider | str,
        *,
        account_id: int | None = None,
    ) -> None:
        """Choose the file (and optionally the target account); allowed until parsing starts."""

        if self._state is ImportState.PARSED:
            self._move(ImportState.SELECTING)
        elif self._state is not ImportState.SELECTING:
            raise RuntimeError(f"cannot select a file while {self._state.value}")
        # Validates the provider before anything is read.
        self._provider = get_profile(provider).provider
        self._document = document
        self._account_id = account_id
        self._parsed = None

    def parse(self) -> ParseResult:
        if self._document is None or self._provider is None:
            raise RuntimeError("select a file before parsing")
        self._move(ImportState.PARSING)
        try:
            result = parse_document(self._document, self._provider)
        except Exception:
            self._move(ImportState.SELECTING)
            raise
        self._parsed = result
        self._move(ImportState.PARSED)
        return result

    def preview(self) -> DedupResult:
        """Dedup the parsed records against the ledger without writing anything."""

        if self._state is not ImportState.PARSED or self._parsed is None:
            raise RuntimeError(f"nothing to preview while {self._state.value}")
        return deduplicate(self.store, self.owner_id, self._parsed.records)

    def commit(self) -> ImportReport:
        parsed = self._parsed
        if self._state is not ImportState.PARSED or parsed is None:
            raise RuntimeError(f"nothing to commit while {self._state.value}")
        self._move(ImportState.COMMITTING)
        try:
            report = self._commit(parsed)
        except Exception:
            self._move(ImportState.PARSED)
            raise
        self._report = report
        self._committed_at = self._clock()
        self._move(ImportState.COMMITTED)
        return report

    def _commit(self, parsed: ParseResult) -> ImportReport:
        profile = get_profile(parsed.provider)
        account = resolve_account(
            self.store.find_accounts_by_owner(self.owner_id),
            profile,
            self.settings,
            account_id=self._account_id,
        )
        dedup = deduplicate(self.store, self.owner_id, parsed.records)
        reasons = dict(dedup.reasons)
        if not dedup.survivors:
            logger.info("nothing new to import from %s", parsed.filename or "<bytes>")
            return ImportReport(
                provider=parsed.provider,
                account_id=account.id,
                parsed=parsed.parsed,
                skipped=parsed.skipped,
                deduplicated=dedup.dropped,
                committed=0,
                dedup_reasons=reasons,
                undo_window_seconds=self.settings.undo_window_seconds,
            )

        # Categories only for records that survived dedup.
        categories = resolve_categories(
            self.store, self.owner_id, dedup.survivors, self.settings
        )
        planned = [
            PlannedRow(record=rec, fingerprint=fp, category_id=cid)
            for rec, fp, cid in zip(
                dedup.survivors, dedup.fingerprints, categories.category_ids, strict=True
            )
        ]
        outcome = commit_batch(
            self.store,
            owner_id=self.owner_id,
            account_id=account.id,
            rows=planned,
            created_category_ids=categories.created_ids,
            chunk_size=self.settings.chunk_size,
            filename=parsed.filename or None,
        )
        if outcome.rejected:
            reasons[REASON_STORE_CONFLICT] = outcome.rejected

        report = ImportReport(
            provider=parsed.provider,
            account_id=account.id,
            parsed=parsed.parsed,
            skipped=parsed.skipped,
            deduplicated=dedup.dropped + outcome.rejected,
            committed=len(outcome.committed_ids),
            committed_ids=outcome.committed_ids,
            balance_delta=outcome.balance_delta,
            dedup_reasons=reasons,
            created_category_ids=categories.created_ids,
            undo_window_seconds=self.settings.undo_window_seconds,
            undo=outcome.undo,
        )
        logger.info(
            "imported %s into account %s: parsed=%d skipped=%d deduplicated=%d committed=%d",
            parsed.filename or "<bytes>",
            account.id,
            report.parsed,
            report.skipped,
            report.deduplicated,
            report.committed,
        )
        return report

    def undo_available(self) -> bool:
        """True while committed and inside the advisory undo window."""

        if self._state is not ImportState.COMMITTED or self._committed_at is None:
            return False
        return self._clock() - self._committed_at <= self.settings.undo_window_seconds

    def undo(self) -> bool:
        if self._report is None or self._state is not ImportState.COMMITTED:
            raise RuntimeError(f"nothing to undo while {self._state.value}")
        # A store failure leaves the session COMMITTED so the undo can be retried.
        reversed_now = self._report.undo()
        self._move(ImportState.UNDO_COMPLETE)
        return reversed_now

    def expire(self) -> None:
        """Close the undo offer (the normal end of a successful import)."""

        self._move(ImportState.EXPIRED)


def import_statement(
    source: RawDocument | str | Path,
    *,
    provider: Provider | str,
    owner_id: str,
    store: LedgerStore | None = None,
    password: str | None = None,
    account_id: int | None = None,
    settings: ImportSettings | None = None,
    database_url: str | None = None,
) -> ImportReport:
    """Parse, dedup and commit a statement in one call.

    ``source`` is a path or an already-read :class:`RawDocument`. Without an
    explicit ``store`` the SQL ledger at ``database_url`` (or ``DATABASE_URL``)
    is used. The returned report's ``undo`` reverses the import.
    """

    doc = (
        source
        if isinstance(source, RawDocument)
        else RawDocument.from_path(source, password=password)
    )
    session = ImportSession(
        store or SqlLedgerStore(database_url=database_url),
        owner_id=owner_id,
        settings=settings or load_settings(),
    )
    session.select(doc, provider, account_id=account_id)
    session.parse()
    return session.commit()


__all__ = ["ImportState", "ImportSession", "import_statement"]
