from __future__ import annotations

import json
from pathlib import Path

import pytest

from ledger_categorizer.chart import ChartOfAccounts, load_default_chart
from ledger_categorizer.errors import ChartIntegrityError


def _small_chart(**overrides) -> dict:
    data = {
        "income": {
            "id": "4000",
            "name": "Income",
            "children": {"gifts": {"id": "4100", "name": "Gifts"}},
        },
        "expenses": {
            "id": "5000",
            "name": "Expenses",
            "children": {
                "tech": {
                    "id": "5400",
                    "name": "Technology",
                    "subAccounts": {
                        "computers": {"id": "5410", "name": "Staff Computers"},
                        "hosting": {"id": "5430", "name": "Servers & Hosting"},
                    },
                }
            },
        },
    }
    data.update(overrides)
    return data


def test_resolve_by_id_returns_named_node_with_full_ancestor_path():
    chart = load_default_chart()
    node = chart.resolve_by_id("5110")
    assert node is not None
    assert node.name == "Salaries and Wages"
    assert node.is_leaf
    assert chart.full_path("5110") == "Expenses > Personnel Expenses > Salaries and Wages"


def test_full_path_for_deeper_nodes_and_roots():
    chart = load_default_chart()
    assert chart.full_path("5000") == "Expenses"
    assert chart.full_path("5711").startswith("Expenses > ")
    assert chart.full_path("5711").count(" > ") == 3
    assert chart.full_path("4100", separator="/") == "Income/Major Gifts"


def test_missing_id_signals_not_found():
    chart = load_default_chart()
    assert chart.resolve_by_id("9999") is None
    assert chart.full_path("9999") is None
    assert "9999" not in chart
    assert "5110" in chart


def test_subaccounts_alias_and_preorder_ids():
    chart = ChartOfAccounts.from_mapping(_small_chart())
    assert chart.account_ids() == ["4000", "4100", "5000", "5400", "5410", "5430"]
    assert chart.leaf_ids() == ["4100", "5410", "5430"]
    assert chart.full_path("5430") == "Expenses > Technology > Servers & Hosting"


def test_duplicate_id_is_an_integrity_fault():
    data = _small_chart()
    data["income"]["children"]["dup"] = {"id": "5410", "name": "Duplicate"}
    with pytest.raises(ChartIntegrityError) as ei:
        ChartOfAccounts.from_mapping(data)
    assert "5410" in str(ei.value)


def test_missing_root_section_is_rejected():
    data = _small_chart()
    del data["expenses"]
    with pytest.raises(ChartIntegrityError):
        ChartOfAccounts.from_mapping(data)


def test_render_outline_indents_by_depth():
    chart = ChartOfAccounts.from_mapping(_small_chart())
    lines = chart.render_outline().splitlines()
    assert lines[0] == "- 4000 Income"
    assert lines[1] == "  - 4100 Gifts"
    assert "    - 5410 Staff Computers" in lines


def test_from_json_round_trips_file(tmp_path: Path):
    p = tmp_path / "chart.json"
    p.write_text(json.dumps(_small_chart()), encoding="utf-8")
    chart = ChartOfAccounts.from_json(p)
    assert chart.resolve_by_id("5400").name == "Technology"
    assert [c.id for c in chart.roots["expenses"].walk()] == ["5000", "5400", "5410", "5430"]


def test_chart_nodes_are_read_only():
    chart = ChartOfAccounts.from_mapping(_small_chart())
    node = chart.resolve_by_id("5400")
    with pytest.raises(TypeError):
        node.children["x"] = node  # type: ignore[index]
