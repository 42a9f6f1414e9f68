"""Flatten a fetched organization snapshot into a CSV-ready table.

Snapshot shape (as written by :func:`~ledger_categorizer.ingest.remote.fetch_organizations`)::

    [{"id": ..., "name": ..., "slug": ..., "parent": ..., "transactions": [...]}, ...]

Every transaction becomes one row. Nested objects flatten to dotted paths
(``card_charge.merchant.name``). Arrays of objects expand their first
:data:`MAX_ARRAY_ITEMS` items to ``<name><n>.<field>`` (``receipts1.url``);
arrays of scalars are joined with ``;``. The organization columns come first,
then every other path in sorted order.
"""

from __future__ import annotations

import csv
import json
from collections.abc import Mapping, Sequence
from os import PathLike
from pathlib import Path
from typing import Any

from ..errors import InputFault, IOFault
from ..logging_setup import get_logger

MAX_ARRAY_ITEMS = 5
ORG_COLUMNS: tuple[str, ...] = ("org_id", "org_parent_id", "org_name", "org_slug")

_logger = get_logger("ledger_categorizer.ingest.flatten")


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten_into(obj: Mapping[str, Any], prefix: str, out: dict[str, str]) -> None:
    for key, value in obj.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, list):
            scalars = [_scalar(v) for v in value if not isinstance(v, (Mapping, list))]
            out[path] = ";".join(s for s in scalars if s)
            if value and isinstance(value[0], Mapping):
                for i, item in enumerate(value[:MAX_ARRAY_ITEMS], start=1):
                    if isinstance(item, Mapping):
                        _flatten_into(item, f"{path}{i}", out)
        elif isinstance(value, Mapping):
            _flatten_into(value, path, out)
        else:
            out[path] = _scalar(value)


def flatten_transaction(tx: Mapping[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    _flatten_into(tx, "", out)
    return out


def flatten_snapshot(snapshot: Sequence[Mapping[str, Any]]) -> tuple[list[str], list[list[str]]]:
    """Return ``(columns, rows)`` for every transaction in ``snapshot``.

    Raises :class:`InputFault` when the snapshot holds no transactions.
    """

    flat_rows: list[dict[str, str]] = []
    for org in snapshot:
        if not isinstance(org, Mapping):
            raise InputFault("snapshot entries must be JSON objects", step="flatten")
        org_cols = {
            "org_id": _scalar(org.get("id")),
            "org_parent_id": _scalar(org.get("parent")),
            "org_name": _scalar(org.get("name")),
            "org_slug": _scalar(org.get("slug")),
        }
        for tx in org.get("transactions") or []:
            if not isinstance(tx, Mapping):
                continue
            flat_rows.append({**org_cols, **flatten_transaction(tx)})

    if not flat_rows:
        raise InputFault("no transactions found in snapshot", step="flatten")

    paths: set[str] = set()
    for row in flat_rows:
        paths.update(row)
    columns = list(ORG_COLUMNS) + sorted(p for p in paths if p not in ORG_COLUMNS)
    rows = [[row.get(c, "") for c in columns] for row in flat_rows]
    return columns, rows


def write_csv(columns: Sequence[str], rows: Sequence[Sequence[str]], path: str | PathLike[str]) -> None:
    out = Path(path)
    try:
        with out.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(columns)
            writer.writerows(rows)
    except OSError as e:
        raise IOFault(f"failed to write {out}: {e}", step="flatten") from e


def flatten_snapshot_file(input_path: str | PathLike[str], output_path: str | PathLike[str]) -> int:
    """Read a snapshot JSON file, flatten it and write the CSV; return the row count."""

    src = Path(input_path)
    try:
        snapshot = json.loads(src.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InputFault(f"snapshot not found: {src}", step="flatten") from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InputFault(f"failed to read snapshot {src}: {e}", step="flatten") from e
    if not isinstance(snapshot, list):
        raise InputFault("snapshot must be a JSON array of organizations", step="flatten")
    columns, rows = flatten_snapshot(snapshot)
    write_csv(columns, rows, output_path)
    _logger.info("flatten:written path=%s rows=%d columns=%d", output_path, len(rows), len(columns))
    return len(rows)


__all__ = [
    "MAX_ARRAY_ITEMS",
    "ORG_COLUMNS",
    "flatten_transaction",
    "flatten_snapshot",
    "flatten_snapshot_file",
    "write_csv",
]
