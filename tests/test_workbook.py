from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

import pytest
from openpyxl import load_workbook

from ledger_categorizer.chart import load_default_chart
from ledger_categorizer.errors import IOFault
from ledger_categorizer.models import TransactionRecord
from ledger_categorizer.statement import NET_LABEL, build_statement
from ledger_categorizer.workbook import (
    ACCOUNTING_FORMAT,
    FIXED_COLUMNS,
    SHEET_TITLE,
    write_statement_workbook,
)

CHART = load_default_chart()


def _statement():
    records = [
        TransactionRecord(
            date=date(2024, 3, 12),
            amount=-1250,
            account_id="5410",
            extra_fields={"description": "USB-C dock"},
            idempotency_key="a",
        ),
        TransactionRecord(
            date=date(2024, 4, 2),
            amount=30000,
            account_id="4200",
            extra_fields={"description": "Web donation"},
            idempotency_key="b",
        ),
    ]
    return build_statement(records, CHART)


def _rows_by_label(ws) -> dict[tuple[str | None, str | None], int]:
    out = {}
    for r in range(2, ws.max_row + 1):
        out.setdefault((ws.cell(r, 1).value, ws.cell(r, 2).value), r)
    return out


def test_workbook_layout_and_values(tmp_path: Path):
    path = write_statement_workbook(_statement(), tmp_path / "out" / "statement.xlsx")
    ws = load_workbook(path)[SHEET_TITLE]

    headers = [c.value for c in ws[1]]
    assert headers == list(FIXED_COLUMNS) + ["2024-03", "2024-04"]

    rows = _rows_by_label(ws)
    summary = rows[("Staff Computers", "5410")]
    assert ws.cell(summary, 5).value == pytest.approx(-12.5)
    assert ws.cell(summary, 5).number_format == ACCOUNTING_FORMAT
    assert ws.cell(summary, 1).font.bold

    net = rows[(NET_LABEL, None)]
    assert ws.cell(net, 5).value == pytest.approx(-12.5)
    assert ws.cell(net, 6).value == pytest.approx(300.0)


def test_detail_rows_are_hidden_outlined_and_dated(tmp_path: Path):
    path = write_statement_workbook(_statement(), tmp_path / "statement.xlsx")
    ws = load_workbook(path)[SHEET_TITLE]

    rows = _rows_by_label(ws)
    summary = rows[("Staff Computers", "5410")]
    detail = summary + 1
    assert ws.cell(detail, 1).value is None
    assert ws.cell(detail, 2).value == "5410"
    assert ws.cell(detail, 4).value == "USB-C dock"
    assert ws.cell(detail, 3).value == datetime(2024, 3, 12)
    dim = ws.row_dimensions[detail]
    assert dim.hidden is True
    assert dim.outline_level >= 1
    assert not ws.row_dimensions[summary].hidden
    assert ws.sheet_properties.outlinePr.summaryBelow is False
    assert ws.freeze_panes == "E2"


def test_unwritable_destination_is_io_fault(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(IOFault) as ei:
        write_statement_workbook(_statement(), blocker / "statement.xlsx")
    assert ei.value.step == "workbook"
