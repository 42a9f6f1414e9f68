"""Load a ledger CSV export into normalized transaction records.

Header names vary across exports, so the date and amount columns are not
found by convention: the caller supplies ``identify_fields`` (normally the
classifier oracle) which maps the header row to a
:class:`~ledger_categorizer.models.FieldMapping`.
"""

from __future__ import annotations

import csv
from collections.abc import Callable, Sequence
from os import PathLike
from pathlib import Path
from typing import TypeAlias

from ..errors import InputFault, OracleFault
from ..logging_setup import get_logger
from ..models import FieldMapping, TransactionRecord
from ..normalizers import parse_date, to_cents
from ..persistence import compute_idempotency_key

IdentifyFields: TypeAlias = Callable[[Sequence[str]], FieldMapping]

_CATEGORY_COLUMN = "category"

_logger = get_logger("ledger_categorizer.ingest.csv_ledger")


def read_csv_rows(path: str | PathLike[str]) -> tuple[list[str], list[dict[str, str]]]:
    """Return ``(headers, rows)`` with trimmed cells and blank lines skipped.

    Raises :class:`InputFault` when the file is missing, unreadable, has no
    header, or has no data rows.
    """

    p = Path(path)
    try:
        with p.open(encoding="utf-8-sig", newline="") as f:
            records = [r for r in csv.reader(f) if any(c.strip() for c in r)]
    except FileNotFoundError as e:
        raise InputFault(f"file not found: {p}", step="ingest") from e
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise InputFault(f"failed to parse CSV {p}: {e}", step="ingest") from e

    if not records:
        raise InputFault(f"CSV is empty: {p}", step="ingest")
    headers = [h.strip() for h in records[0]]
    if not any(headers):
        raise InputFault(f"CSV appears to have no header row: {p}", step="ingest")
    rows: list[dict[str, str]] = []
    for raw in records[1:]:
        cells = [c.strip() for c in raw]
        cells += [""] * (len(headers) - len(cells))
        rows.append({h: cells[i] for i, h in enumerate(headers) if h})
    if not rows:
        raise InputFault(f"CSV has a header but no rows: {p}", step="ingest")
    return headers, rows


def row_to_transaction(row: dict[str, str], mapping: FieldMapping) -> TransactionRecord:
    """Normalize one CSV row; every unmapped column is kept verbatim."""

    minor = "cents" in mapping.amount_field.lower()
    category: str | None = None
    extras: dict[str, str] = {}
    for k, v in row.items():
        if k in (mapping.date_field, mapping.amount_field):
            continue
        if k.lower() == _CATEGORY_COLUMN:
            category = v or None
            continue
        extras[k] = v
    record = TransactionRecord(
        date=parse_date(row.get(mapping.date_field)),
        amount=to_cents(row.get(mapping.amount_field), minor_units=minor),
        category=category,
        extra_fields=extras,
    )
    record.idempotency_key = compute_idempotency_key(record)
    return record


def load_ledger_csv(
    path: str | PathLike[str], identify_fields: IdentifyFields
) -> list[TransactionRecord]:
    """Read ``path`` and return one record per data row, in file order.

    Raises :class:`InputFault` for empty/unparseable files and
    :class:`OracleFault` when ``identify_fields`` names a column that is not
    in the header.
    """

    headers, rows = read_csv_rows(path)
    named = [h for h in headers if h]
    mapping = identify_fields(named)
    missing = [f for f in (mapping.date_field, mapping.amount_field) if f not in named]
    if missing:
        raise OracleFault(
            f"identified columns not in header: {', '.join(missing)}", step="identify_fields"
        )
    _logger.info(
        "ingest:fields date=%s amount=%s rows=%d",
        mapping.date_field,
        mapping.amount_field,
        len(rows),
    )
    records = [row_to_transaction(r, mapping) for r in rows]
    bad_dates = sum(1 for r in records if r.date is None)
    bad_amounts = sum(1 for r in records if r.amount is None)
    if bad_dates or bad_amounts:
        _logger.warning(
            "ingest:unparsed dates=%d amounts=%d path=%s", bad_dates, bad_amounts, path
        )
    return records


__all__ = ["IdentifyFields", "read_csv_rows", "row_to_transaction", "load_ledger_csv"]
