# ruff: noqa: I001
"""CLI for the ``ledger_categorizer`` package.

Command handlers (``cmd_*``) hold the logic and return a process exit code;
the Typer commands below are thin wrappers. Environment variables (notably
``OPENAI_API_KEY`` and ``HCB_TOKEN``) are loaded from a local ``.env`` using
``python-dotenv`` in the root callback. Business logic lives in
``ledger_categorizer.api`` and related modules.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .config import Settings
from .errors import LedgerError
from .logging_setup import configure_logging


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _settings(**overrides: object) -> Settings | None:
    try:
        return Settings.from_env().with_overrides(**overrides)
    except ValueError as e:
        _error(f"invalid configuration: {e}")
        return None


def cmd_categorize(
    csv_path: Path,
    *,
    store_path: Path | None = None,
    receipt_cache: Path | None = None,
    receipts: bool = True,
    model: str | None = None,
) -> int:
    """Categorize a ledger CSV into the store, asking clarifying questions as needed.

    Already-stored transactions are skipped, so an interrupted run can simply
    be restarted. Returns ``0`` on success and ``1`` on any fault.
    """

    # Local imports keep CLI startup fast
    from .api import categorize_ledger_csv
    from .chart import load_default_chart
    from .oracle import OpenAIClassifier
    from .persistence import LedgerStore
    from .receipts import ReceiptCache, ReceiptEnricher
    from .term_ui import PromptToolkitAnswerSource

    settings = _settings(
        store_path=store_path, receipt_cache_path=receipt_cache, model=model
    )
    if settings is None:
        return 1
    if not settings.openai_api_key:
        return _error("OPENAI_API_KEY is not set in the environment.")

    classifier = OpenAIClassifier(model=settings.model)
    enricher = (
        ReceiptEnricher(classifier=classifier, cache=ReceiptCache(settings.receipt_cache_path))
        if receipts
        else None
    )
    try:
        summary = categorize_ledger_csv(
            csv_path,
            classifier=classifier,
            answers=PromptToolkitAnswerSource(),
            store=LedgerStore(settings.store_path),
            chart=load_default_chart(),
            enricher=enricher,
        )
    except LedgerError as e:
        return _error(str(e))
    except (KeyboardInterrupt, EOFError):
        return _error("interrupted; rerun the same command to resume.")

    print(
        f"Categorized {summary.persisted} transaction(s), skipped {summary.skipped} "
        f"already processed; {summary.clarified} needed clarification. "
        f"Store: {settings.store_path}"
    )
    return 0


def cmd_statement(output: Path, *, store_path: Path | None = None) -> int:
    """Write the statement of activity workbook for every stored transaction."""

    from .api import export_statement

    settings = _settings(store_path=store_path)
    if settings is None:
        return 1
    try:
        statement, path = export_statement(settings.store_path, output)
    except LedgerError as e:
        return _error(str(e))
    print(f"Wrote {len(statement.rows)} rows over {len(statement.months)} month(s) to {path}")
    return 0


def cmd_fetch(orgs_file: Path, output: Path) -> int:
    """Fetch every listed organization's transactions into a snapshot JSON file."""

    from .ingest.remote import HcbLedgerSource, fetch_organizations, load_organizations
    from .ratelimit import WindowRateLimiter

    settings = _settings()
    if settings is None:
        return 1
    if not settings.hcb_token:
        return _error("HCB_TOKEN is not set in the environment.")

    source = HcbLedgerSource(
        settings.hcb_token,
        base_url=settings.api_base_url,
        limiter=WindowRateLimiter(settings.api_max_requests, settings.api_window_seconds),
    )
    try:
        snapshot = fetch_organizations(load_organizations(orgs_file), source, output)
    except LedgerError as e:
        return _error(str(e))
    total = sum(len(org["transactions"]) for org in snapshot)
    print(f"Fetched {total} transaction(s) from {len(snapshot)} organization(s) into {output}")
    return 0


def cmd_flatten(input_path: Path, output: Path) -> int:
    """Flatten a snapshot JSON file into a ledger CSV ready for ``categorize``."""

    from .ingest.flatten import flatten_snapshot_file

    try:
        n = flatten_snapshot_file(input_path, output)
    except LedgerError as e:
        return _error(str(e))
    print(f"Wrote {n} transaction(s) to {output}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Categorize ledger transactions against a chart of accounts using OpenAI "
        "(Responses API) and build a statement of activity. Loads OPENAI_API_KEY "
        "and HCB_TOKEN from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to the ledger CSV export to categorize",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files
)
OUTPUT_OPTION: OptionInfo = typer.Option(..., "--output", help="Output file path")
# Optional: the parameter default (``= None``) makes it so.
STORE_OPTION: OptionInfo = typer.Option(
    ..., "--store", help="Ledger store CSV (falls back to LEDGER_STORE_PATH)."
)


@app.command("categorize")
def categorize_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    store: Annotated[Path | None, STORE_OPTION] = None,
    receipt_cache: Path | None = typer.Option(
        None, "--receipt-cache", help="Receipt cache JSON (falls back to LEDGER_RECEIPT_CACHE)."
    ),
    no_receipts: bool = typer.Option(
        False, "--no-receipts", help="Skip receipt download and extraction."
    ),
    model: str | None = typer.Option(
        None, "--model", help="Override the oracle model (falls back to LEDGER_MODEL)."
    ),
) -> None:
    """Categorize a ledger CSV into the idempotent store."""

    raise typer.Exit(
        cmd_categorize(
            csv_path,
            store_path=store,
            receipt_cache=receipt_cache,
            receipts=not no_receipts,
            model=model,
        )
    )


@app.command("statement")
def statement_cmd(
    output: Annotated[Path, OUTPUT_OPTION],
    store: Annotated[Path | None, STORE_OPTION] = None,
) -> None:
    """Build the statement of activity workbook from the store."""

    raise typer.Exit(cmd_statement(output, store_path=store))


@app.command("fetch")
def fetch_cmd(
    orgs_file: Annotated[
        Path,
        typer.Option(
            ..., "--orgs-file", help="JSON array of organizations ({id, name, slug, parent})."
        ),
    ],
    output: Annotated[Path, OUTPUT_OPTION],
) -> None:
    """Fetch organization transactions (with receipts) from the remote ledger API."""

    raise typer.Exit(cmd_fetch(orgs_file, output))


@app.command("flatten")
def flatten_cmd(
    input_path: Annotated[
        Path, typer.Option(..., "--input", help="Snapshot JSON written by fetch.")
    ],
    output: Annotated[Path, OUTPUT_OPTION],
) -> None:
    """Flatten a fetched snapshot into a ledger CSV."""

    raise typer.Exit(cmd_flatten(input_path, output))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m ledger_categorizer.cli`
    main()
