# ruff: noqa: I001
"""Operator CLI for ``statement_import``.

A thin Typer console script standing in for the presentation layer while
developing: pick a file, review the summary, confirm, and get the same undo
offer a UI would show. Environment (``DATABASE_URL``, ``STATEMENT_IMPORT_*``)
is loaded from a local ``.env`` with ``python-dotenv`` before any command runs.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .errors import AuthError, StatementImportError
from .logging_setup import configure_logging
from .models import ImportReport, ParseResult, Provider, RawDocument
from .session import ImportSession
from .settings import load_settings
from .store import SqlLedgerStore


def _now() -> float:
    return time.monotonic()


def _err(msg: str) -> None:
    print(f"Error: {msg}", file=sys.stderr)


def _print_parse_summary(parsed: ParseResult, would_commit: int, duplicates: int) -> None:
    typer.echo(f"File:          {parsed.filename or '<bytes>'} ({parsed.provider.value})")
    typer.echo(f"Rows parsed:   {parsed.parsed}")
    typer.echo(f"Skipped:       {parsed.skipped} (neutral or zero amount)")
    typer.echo(f"Duplicates:    {duplicates}")
    typer.echo(f"To import:     {would_commit}")


def _print_report(report: ImportReport) -> None:
    typer.echo(
        f"Imported {report.committed} transaction(s) into account {report.account_id}; "
        f"balance change {report.balance_delta:+.2f}"
    )
    if report.dedup_reasons:
        detail = ", ".join(f"{k}={v}" for k, v in sorted(report.dedup_reasons.items()))
        typer.echo(f"Duplicates skipped: {report.deduplicated} ({detail})")


def cmd_import(
    file: Path,
    *,
    provider: Provider,
    owner_id: str,
    password: str | None = None,
    account_id: int | None = None,
    database_url: str | None = None,
    dry_run: bool = False,
    assume_yes: bool = False,
) -> int:
    """Run one interactive import; returns a process exit code."""

    settings = load_settings()
    session = ImportSession(
        SqlLedgerStore(database_url=database_url),
        owner_id=owner_id,
        settings=settings,
        clock=_now,
    )
    try:
        doc = RawDocument.from_path(file, password=password)
    except OSError as e:
        _err(f"cannot read {file}: {e}")
        return 1
    except StatementImportError as e:
        _err(str(e))
        return 1

    try:
        session.select(doc, provider, account_id=account_id)
        parsed = session.parse()
        preview = session.preview()
    except AuthError as e:
        _err(f"{e} (re-run with --password)")
        return 2
    except (StatementImportError, ValueError) as e:
        _err(str(e))
        return 1

    _print_parse_summary(parsed, len(preview.survivors), preview.dropped)
    if dry_run:
        typer.echo("Dry run: nothing written.")
        return 0
    if not preview.survivors:
        typer.echo("Nothing new to import.")
        return 0
    if not assume_yes and not typer.confirm("Import these transactions?", default=True):
        typer.echo("Aborted.")
        return 0

    try:
        report = session.commit()
    except StatementImportError as e:
        _err(str(e))
        return 1
    _print_report(report)

    if assume_yes or report.committed == 0:
        session.expire()
        return 0

    want_undo = typer.confirm(
        f"Undo this import? (offered for {report.undo_window_seconds:g}s)", default=False
    )
    if not want_undo:
        session.expire()
        return 0
    if not session.undo_available():
        session.expire()
        typer.echo("Undo window expired; the import was kept.")
        return 0
    try:
        session.undo()
    except StatementImportError as e:
        _err(f"undo failed: {e}")
        return 1
    typer.echo("Import reverted.")
    return 0


def cmd_init_db(*, database_url: str | None = None, seed_owner: str | None = None) -> int:
    """Create the ledger schema (SQLite experiments) and optionally seed an owner."""

    from ledger_db import Base
    from ledger_db.client import get_engine, session_scope
    from ledger_db.seed import seed_owner_defaults
    from sqlalchemy.exc import SQLAlchemyError

    try:
        engine = get_engine(database_url=database_url)
        Base.metadata.create_all(bind=engine)
        if seed_owner:
            with session_scope(database_url=database_url) as session:
                seeded = seed_owner_defaults(session, seed_owner)
            typer.echo(
                f"Seeded defaults for {seed_owner}."
                if seeded
                else f"Owner {seed_owner} already has accounts; nothing seeded."
            )
    except (RuntimeError, SQLAlchemyError) as e:
        _err(str(e))
        return 1
    typer.echo("Ledger schema ready.")
    return 0


# ---- Typer wiring -------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Import payment-app and bank statements into the ledger without duplicates.",
)

# Module-level argument object to satisfy ruff B008 (no calls in defaults).
FILE_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Statement file (CSV, XLSX or PDF).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a friendly error
)


@app.command("import")
def import_cmd(
    file: Annotated[Path, FILE_ARGUMENT],
    *,
    provider: Provider = typer.Option(..., help="Statement provider."),
    owner_id: str = typer.Option(..., envvar="STATEMENT_IMPORT_OWNER_ID", help="Ledger owner."),
    password: str | None = typer.Option(None, help="PDF password (bank statements)."),
    account_id: int | None = typer.Option(None, help="Import into this account ID."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Parse and dedup only."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation and undo prompts."),
) -> None:
    code = cmd_import(
        file,
        provider=provider,
        owner_id=owner_id,
        password=password,
        account_id=account_id,
        database_url=database_url,
        dry_run=dry_run,
        assume_yes=yes,
    )
    if code:
        raise typer.Exit(code)


@app.command("init-db")
def init_db_cmd(
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    seed_owner: str | None = typer.Option(
        None, help="Also create the default account and categories for this owner."
    ),
) -> None:
    code = cmd_init_db(database_url=database_url, seed_owner=seed_owner)
    if code:
        raise typer.Exit(code)


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
