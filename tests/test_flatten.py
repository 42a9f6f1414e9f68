import csv
import json
from pathlib import Path

import pytest

from ledger_categorizer.errors import InputFault
from ledger_categorizer.ingest.flatten import flatten_snapshot, flatten_snapshot_file


def _snapshot() -> list[dict]:
    return [
        {
            "id": "org_a",
            "name": "Counterspell A",
            "slug": "cs-a",
            "parent": None,
            "transactions": [
                {
                    "id": "txn_1",
                    "amount_cents": -5000,
                    "date": "2024-03-05",
                    "memo": "AWS, Inc.",
                    "pending": False,
                    "tags": ["ops", "cloud"],
                    "card_charge": {"merchant": {"name": "AWS"}},
                    "receipts": [
                        {"url": f"https://x/{i}.pdf", "preview_url": f"https://x/{i}.png"}
                        for i in range(7)
                    ],
                },
                {"id": "txn_2", "amount_cents": 2500, "date": "2024-03-06", "receipts": []},
            ],
        }
    ]


def test_org_columns_first_then_sorted_paths():
    columns, rows = flatten_snapshot(_snapshot())
    assert columns[:4] == ["org_id", "org_parent_id", "org_name", "org_slug"]
    rest = columns[4:]
    assert rest == sorted(rest)
    assert "card_charge.merchant.name" in rest
    assert len(rows) == 2


def test_arrays_of_objects_expand_first_five_items():
    columns, rows = flatten_snapshot(_snapshot())
    row = dict(zip(columns, rows[0], strict=True))
    assert row["receipts1.url"] == "https://x/0.pdf"
    assert row["receipts5.preview_url"] == "https://x/4.png"
    assert "receipts6.url" not in columns
    assert row["receipts"] == ""


def test_scalar_arrays_join_and_scalars_render():
    columns, rows = flatten_snapshot(_snapshot())
    first = dict(zip(columns, rows[0], strict=True))
    second = dict(zip(columns, rows[1], strict=True))
    assert first["tags"] == "ops;cloud"
    assert first["pending"] == "false"
    assert first["org_parent_id"] == ""
    assert first["org_name"] == "Counterspell A"
    # Missing paths are blank for transactions that lack them.
    assert second["card_charge.merchant.name"] == ""
    assert second["amount_cents"] == "2500"


def test_empty_snapshot_is_input_fault():
    with pytest.raises(InputFault):
        flatten_snapshot([{"id": "org", "transactions": []}])


def test_flatten_file_writes_escaped_csv(tmp_path: Path):
    src = tmp_path / "snapshot.json"
    out = tmp_path / "flat.csv"
    src.write_text(json.dumps(_snapshot()), encoding="utf-8")

    assert flatten_snapshot_file(src, out) == 2
    with out.open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert rows[0]["memo"] == "AWS, Inc."
    assert rows[1]["id"] == "txn_2"


def test_flatten_file_rejects_non_array(tmp_path: Path):
    src = tmp_path / "snapshot.json"
    src.write_text("{}", encoding="utf-8")
    with pytest.raises(InputFault):
        flatten_snapshot_file(src, tmp_path / "flat.csv")
