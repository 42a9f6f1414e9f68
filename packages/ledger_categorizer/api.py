"""Public API and orchestration for the ``ledger_categorizer`` package.

The CLI is a thin shell over these functions; each wires the collaborators
(classifier oracle, answer source, ledger store, chart) and delegates to the
engine or the aggregator.
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path

from .categorize import CategorizationEngine, RunSummary
from .chart import ChartOfAccounts, load_default_chart
from .ingest.csv_ledger import load_ledger_csv
from .models import Statement
from .oracle import Classifier
from .persistence import LedgerStore
from .receipts import ReceiptEnricher
from .statement import build_statement
from .term_ui import AnswerSource
from .workbook import write_statement_workbook


def categorize_ledger_csv(
    csv_path: str | PathLike[str],
    *,
    classifier: Classifier,
    answers: AnswerSource,
    store: LedgerStore,
    chart: ChartOfAccounts | None = None,
    enricher: ReceiptEnricher | None = None,
) -> RunSummary:
    """Load ``csv_path`` and categorize every record not already in ``store``.

    Raises
    ------
    InputFault
        The CSV is missing, empty or unparseable.
    OracleFault
        A classifier call failed for a record; earlier records stay persisted.
    IOFault
        The store could not be read or appended to.
    """

    records = load_ledger_csv(csv_path, classifier.identify_fields)
    engine = CategorizationEngine(
        classifier=classifier,
        chart=chart or load_default_chart(),
        store=store,
        answers=answers,
        enricher=enricher,
    )
    return engine.categorize_transactions(records)


def build_statement_from_store(
    store_path: str | PathLike[str],
    *,
    chart: ChartOfAccounts | None = None,
) -> Statement:
    """Aggregate every persisted record of the store at ``store_path``."""

    records = LedgerStore(store_path).load_records()
    return build_statement(records, chart or load_default_chart())


def export_statement(
    store_path: str | PathLike[str],
    output_path: str | PathLike[str],
    *,
    chart: ChartOfAccounts | None = None,
) -> tuple[Statement, Path]:
    statement = build_statement_from_store(store_path, chart=chart)
    return statement, write_statement_workbook(statement, output_path)


__all__ = ["categorize_ledger_csv", "build_statement_from_store", "export_statement"]
