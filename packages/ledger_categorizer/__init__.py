"""Public interface for the ``ledger_categorizer`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import build_statement_from_store, categorize_ledger_csv, export_statement
from .categorize import CategorizationEngine, RunSummary, TransactionState
from .chart import AccountNode, ChartOfAccounts, load_default_chart
from .errors import (
    ChartIntegrityError,
    EnrichmentFault,
    InputFault,
    IOFault,
    LedgerError,
    MalformedDateFault,
    OracleFault,
)
from .models import (
    CategorizationResult,
    FieldMapping,
    OracleDecision,
    ReceiptExtraction,
    RowKind,
    Statement,
    StatementRow,
    TransactionRecord,
)
from .persistence import LedgerStore, compute_idempotency_key
from .statement import aggregate, build_statement

__all__ = [
    # API
    "categorize_ledger_csv",
    "build_statement_from_store",
    "export_statement",
    # Engine / aggregation
    "CategorizationEngine",
    "RunSummary",
    "TransactionState",
    "aggregate",
    "build_statement",
    # Chart / store
    "AccountNode",
    "ChartOfAccounts",
    "load_default_chart",
    "LedgerStore",
    "compute_idempotency_key",
    # Models / types
    "TransactionRecord",
    "FieldMapping",
    "OracleDecision",
    "CategorizationResult",
    "ReceiptExtraction",
    "RowKind",
    "StatementRow",
    "Statement",
    # Errors
    "LedgerError",
    "InputFault",
    "MalformedDateFault",
    "OracleFault",
    "EnrichmentFault",
    "IOFault",
    "ChartIntegrityError",
]
