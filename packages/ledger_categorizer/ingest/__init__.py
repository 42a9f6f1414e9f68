"""Ingest: ledger CSV loading, remote API fetch and snapshot flattening."""

from .csv_ledger import load_ledger_csv, read_csv_rows, row_to_transaction
from .flatten import flatten_snapshot, flatten_snapshot_file, write_csv
from .remote import HcbLedgerSource, fetch_organizations, load_organizations

__all__ = [
    "load_ledger_csv",
    "read_csv_rows",
    "row_to_transaction",
    "flatten_snapshot",
    "flatten_snapshot_file",
    "write_csv",
    "HcbLedgerSource",
    "fetch_organizations",
    "load_organizations",
]
