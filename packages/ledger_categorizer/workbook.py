"""Write a :class:`~ledger_categorizer.models.Statement` to an ``.xlsx`` workbook."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from os import PathLike
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .errors import IOFault
from .logging_setup import get_logger
from .models import RowKind, Statement

SHEET_TITLE = "Statement of Activity"
FIXED_COLUMNS: tuple[str, ...] = ("Account", "Account ID", "Date", "Description")

ACCOUNTING_FORMAT = '_($* #,##0.00_);_($* (#,##0.00);_($* "-"??_);_(@_)'
DATE_FORMAT = "yyyy-mm-dd"

_MAX_OUTLINE_LEVEL = 7
_EMPHASIS_KINDS = frozenset({RowKind.HEADER, RowKind.ACCOUNT_SUMMARY, RowKind.TOTAL})

_logger = get_logger("ledger_categorizer.workbook")


def _units(cents: int) -> Decimal:
    return Decimal(cents) / 100


def write_statement_workbook(statement: Statement, path: str | PathLike[str]) -> Path:
    """Render ``statement`` into a single-sheet workbook at ``path``.

    Month columns hold currency units (minor units / 100) in accounting
    format. Detail rows are hidden and outlined under their summary row.
    Raises :class:`IOFault` when the file cannot be saved.
    """

    out = Path(path)
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    bold = Font(bold=True)
    fill = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")

    headers = list(FIXED_COLUMNS) + list(statement.months)
    ws.append(headers)
    for col in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = header_fill
    first_month_col = len(FIXED_COLUMNS) + 1

    for row in statement.rows:
        values: list[object] = [
            row.label or None,
            row.account_id if row.kind != RowKind.BLANK else None,
            date.fromisoformat(row.date) if row.date else None,
            row.description or None,
        ]
        values.extend(_units(v) for v in row.monthly_values)
        ws.append(values)
        r = ws.max_row

        ws.cell(row=r, column=1).alignment = Alignment(indent=row.level)
        if row.date:
            ws.cell(row=r, column=3).number_format = DATE_FORMAT
        for i in range(len(row.monthly_values)):
            ws.cell(row=r, column=first_month_col + i).number_format = ACCOUNTING_FORMAT

        if row.kind in _EMPHASIS_KINDS:
            for col in range(1, len(headers) + 1):
                cell = ws.cell(row=r, column=col)
                cell.font = bold
                cell.fill = fill
        if row.kind == RowKind.TRANSACTION_DETAIL:
            dim = ws.row_dimensions[r]
            dim.outline_level = min(max(row.level, 1), _MAX_OUTLINE_LEVEL)
            dim.hidden = row.is_collapsed_by_default

    # Summary rows sit above their detail rows.
    ws.sheet_properties.outlinePr.summaryBelow = False
    ws.freeze_panes = ws.cell(row=2, column=first_month_col)

    ws.column_dimensions["A"].width = 40
    ws.column_dimensions["B"].width = 12
    ws.column_dimensions["C"].width = 12
    ws.column_dimensions["D"].width = 40
    for i in range(len(statement.months)):
        ws.column_dimensions[get_column_letter(first_month_col + i)].width = 14

    try:
        if out.parent and not out.parent.exists():
            out.parent.mkdir(parents=True, exist_ok=True)
        wb.save(out)
    except OSError as e:
        raise IOFault(f"failed to write workbook {out}: {e}", step="workbook") from e
    _logger.info("workbook:saved path=%s rows=%d", out, len(statement.rows))
    return out


__all__ = ["write_statement_workbook", "SHEET_TITLE", "FIXED_COLUMNS", "ACCOUNTING_FORMAT"]
