"""Idempotent, append-only ledger store backed by a CSV file.

The store file doubles as the idempotency index: on startup every persisted
row is re-parsed into a :class:`~ledger_categorizer.models.TransactionRecord`
and its key is derived with :func:`compute_idempotency_key`, the same rule
used for freshly ingested records. No separate index file exists.

File layout::

    date,amount,category,accountId,<extra columns in source order>,accountName

``date`` is ``YYYY-MM-DD`` and ``amount`` is signed integer minor units. Rows
are only ever appended; each append is flushed and fsynced before the key
becomes visible to :meth:`LedgerStore.contains`.
"""

from __future__ import annotations

import csv
import os
import threading
from collections.abc import Mapping
from os import PathLike
from pathlib import Path
from typing import Any

from .errors import IOFault
from .logging_setup import get_logger
from .models import TransactionRecord
from .normalizers import format_cents, normalize_text, parse_date, to_cents

LEADING_COLUMNS: tuple[str, ...] = ("date", "amount", "category", "accountId")
TRAILING_COLUMNS: tuple[str, ...] = ("accountName",)
_RESERVED = frozenset(LEADING_COLUMNS + TRAILING_COLUMNS)

_logger = get_logger("ledger_categorizer.persistence")


def compute_idempotency_key(record: TransactionRecord) -> str:
    """Return the stable idempotency key for ``record``.

    - With an external transaction id (extra field ``id``): ``id:<id>``.
    - Otherwise ``<date>|<amount>|<description>`` lowercased, where amount is
      rendered in currency units with two decimals and description is the
      first non-empty ``description``/``memo`` field, whitespace-collapsed.
    """

    ext = record.external_id
    if ext:
        return f"id:{ext}"
    date_s = record.date.isoformat() if record.date is not None else ""
    amount_s = format_cents(record.amount) if record.amount is not None else ""
    desc_s = normalize_text(record.description)
    return f"{date_s}|{amount_s}|{desc_s}".casefold().strip()


def record_to_row(record: TransactionRecord) -> dict[str, str]:
    """Serialize ``record`` into the store's column mapping (all strings)."""

    row: dict[str, str] = {
        "date": record.date.isoformat() if record.date is not None else "",
        "amount": str(record.amount) if record.amount is not None else "",
        "category": record.category or "",
        "accountId": record.account_id or "",
    }
    for k, v in record.extra_fields.items():
        if k in _RESERVED:
            continue
        row[k] = "" if v is None else str(v)
    row["accountName"] = record.account_name or ""
    return row


def row_to_record(row: Mapping[str, Any]) -> TransactionRecord:
    """Inverse of :func:`record_to_row` for a parsed store row."""

    extras = {k: v for k, v in row.items() if k is not None and k not in _RESERVED}
    record = TransactionRecord(
        date=parse_date(row.get("date")),
        amount=to_cents(row.get("amount"), minor_units=True),
        category=(row.get("category") or None),
        account_id=(str(row.get("accountId") or "").strip() or None),
        account_name=(row.get("accountName") or None),
        extra_fields=extras,
    )
    record.idempotency_key = compute_idempotency_key(record)
    return record


class LedgerStore:
    """Append-only set of categorized transactions keyed by idempotency key."""

    def __init__(self, path: str | PathLike[str]) -> None:
        self.path = Path(path)
        self._keys: set[str] = set()
        self._header: list[str] | None = None
        self._loaded = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_rows(self) -> tuple[list[str] | None, list[dict[str, str]]]:
        if not self.path.exists():
            return None, []
        try:
            with self.path.open("r", encoding="utf-8", newline="") as f:
                reader = csv.DictReader(f)
                header = list(reader.fieldnames or [])
                rows = [
                    {k: (v if v is not None else "") for k, v in r.items() if k is not None}
                    for r in reader
                    if any((v or "").strip() for v in r.values() if isinstance(v, str))
                ]
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise IOFault(f"failed to read ledger store {self.path}: {e}", step="load") from e
        return (header or None), rows

    def load_existing_keys(self) -> set[str]:
        """Rebuild the key set from the persisted store and return a copy."""

        header, rows = self._read_rows()
        keys = {row_to_record(r).idempotency_key for r in rows}
        with self._lock:
            self._header = header
            self._keys = keys
            self._loaded = True
        _logger.info("store:loaded path=%s rows=%d keys=%d", self.path, len(rows), len(keys))
        return set(keys)

    def load_records(self) -> list[TransactionRecord]:
        """Return every persisted row as a record, in file order."""

        if not self.path.exists():
            raise IOFault(f"ledger store not found: {self.path}", step="load")
        _header, rows = self._read_rows()
        return [row_to_record(r) for r in rows]

    def contains(self, key: str) -> bool:
        if not self._loaded:
            self.load_existing_keys()
        return key in self._keys

    def __len__(self) -> int:
        if not self._loaded:
            self.load_existing_keys()
        return len(self._keys)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, record: TransactionRecord) -> bool:
        """Durably append ``record``; return ``False`` when its key is already present.

        Writes the header first when the store file does not exist yet.
        Columns missing from an existing header are dropped, unless dropping
        them would change the key the row reloads with. Raises
        :class:`IOFault` in that case, and when the file cannot be written.
        """

        if not self._loaded:
            self.load_existing_keys()
        key = record.idempotency_key or compute_idempotency_key(record)
        row = record_to_row(record)

        with self._lock:
            if key in self._keys:
                return False
            write_header = self._header is None or not self.path.exists()
            header = list(row.keys()) if write_header else list(self._header or [])
            dropped = [k for k in row if k not in header]
            if dropped:
                # The reloaded row must derive the same key or a rerun appends it again.
                written = {col: row.get(col, "") for col in header}
                if compute_idempotency_key(row_to_record(written)) != key:
                    raise IOFault(
                        f"ledger store {self.path} has no column for "
                        f"{','.join(dropped)}; the row would not reload with its key",
                        key=key,
                        step="append",
                    )
                _logger.warning(
                    "store:columns_dropped key=%s columns=%s", key, ",".join(dropped)
                )
            try:
                if self.path.parent and not self.path.parent.exists():
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8", newline="") as f:
                    writer = csv.writer(f, lineterminator="\n")
                    if write_header:
                        writer.writerow(header)
                    writer.writerow([row.get(col, "") for col in header])
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise IOFault(
                    f"failed to append to ledger store {self.path}: {e}", key=key, step="append"
                ) from e
            self._header = header
            self._keys.add(key)
        return True


__all__ = [
    "LedgerStore",
    "compute_idempotency_key",
    "record_to_row",
    "row_to_record",
    "LEADING_COLUMNS",
    "TRAILING_COLUMNS",
]
