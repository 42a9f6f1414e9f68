from __future__ import annotations

import csv
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import ledger_categorizer.cli as cli_mod
import ledger_categorizer.oracle as oracle_mod
import ledger_categorizer.term_ui as term_ui_mod
from ledger_categorizer.models import FieldMapping
from tests.helpers.fakes import FakeClassifier, ScriptedAnswerSource, decision

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    # configure_logging detaches the package logger from the root, which would
    # hide records from caplog in later tests.
    monkeypatch.setattr(cli_mod, "configure_logging", lambda *a, **kw: None)


def _write_ledger(path: Path) -> Path:
    path.write_text(
        "Date,Amount,Memo\n"
        "2024-03-05,-50.00,AWS hosting\n"
        "2024-03-09,-1200.00,Laptop\n",
        encoding="utf-8",
    )
    return path


def test_categorize_requires_openai_key(tmp_path: Path):
    result = runner.invoke(
        cli_mod.app, ["categorize", "--csv-path", str(_write_ledger(tmp_path / "l.csv"))]
    )
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_categorize_then_statement_end_to_end(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    def _decide(payload):
        if "Laptop" in payload.get("Memo", ""):
            return decision("5410", ("Who uses it?", ["Staff", "Server room"]))
        return decision("5430")

    fake = FakeClassifier(
        _decide,
        resolve=lambda _p, _q, answer: decision("5410" if answer == "Staff" else "5430"),
        fields=FieldMapping("Date", "Amount"),
    )
    answers = ScriptedAnswerSource(["1"])
    monkeypatch.setattr(oracle_mod, "OpenAIClassifier", lambda **_kw: fake)
    monkeypatch.setattr(term_ui_mod, "PromptToolkitAnswerSource", lambda: answers)

    store = tmp_path / "store.csv"
    ledger = _write_ledger(tmp_path / "l.csv")
    args = ["categorize", "--csv-path", str(ledger), "--store", str(store), "--no-receipts"]

    result = runner.invoke(cli_mod.app, args)
    assert result.exit_code == 0, result.output
    assert "Categorized 2 transaction(s)" in result.output
    assert fake.clarify_calls[0]["answer"] == "Staff"

    with store.open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert [r["accountId"] for r in rows] == ["5430", "5410"]

    # Rerun resumes: everything is already stored, nothing is asked.
    result = runner.invoke(cli_mod.app, args)
    assert result.exit_code == 0, result.output
    assert "skipped 2" in result.output
    assert len(answers.asked) == 1

    out = tmp_path / "statement.xlsx"
    result = runner.invoke(cli_mod.app, ["statement", "--output", str(out), "--store", str(store)])
    assert result.exit_code == 0, result.output
    assert out.exists()


def test_statement_with_missing_store_fails(tmp_path: Path):
    result = runner.invoke(
        cli_mod.app,
        ["statement", "--output", str(tmp_path / "s.xlsx"), "--store", str(tmp_path / "none.csv")],
    )
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_store_path_falls_back_to_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LEDGER_STORE_PATH", str(tmp_path / "env-store.csv"))
    result = runner.invoke(cli_mod.app, ["statement", "--output", str(tmp_path / "s.xlsx")])
    assert result.exit_code == 1
    assert "env-store.csv" in result.output


def test_fetch_requires_token(tmp_path: Path):
    orgs = tmp_path / "orgs.json"
    orgs.write_text(json.dumps([{"id": "org1"}]), encoding="utf-8")
    result = runner.invoke(
        cli_mod.app, ["fetch", "--orgs-file", str(orgs), "--output", str(tmp_path / "s.json")]
    )
    assert result.exit_code == 1
    assert "HCB_TOKEN" in result.output


def test_flatten_writes_csv(tmp_path: Path):
    snapshot = tmp_path / "snapshot.json"
    snapshot.write_text(
        json.dumps(
            [{"id": "org1", "name": "Org", "transactions": [{"id": "t1", "amount_cents": -100}]}]
        ),
        encoding="utf-8",
    )
    out = tmp_path / "flat.csv"
    result = runner.invoke(cli_mod.app, ["flatten", "--input", str(snapshot), "--output", str(out)])
    assert result.exit_code == 0, result.output
    assert "Wrote 1 transaction(s)" in result.output
    assert out.read_text(encoding="utf-8").startswith("org_id,")


def test_invalid_numeric_configuration_is_reported(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("HCB_TOKEN", "tok")
    monkeypatch.setenv("LEDGER_API_WINDOW_SECONDS", "soon")
    orgs = tmp_path / "orgs.json"
    orgs.write_text("[]", encoding="utf-8")
    result = runner.invoke(
        cli_mod.app, ["fetch", "--orgs-file", str(orgs), "--output", str(tmp_path / "s.json")]
    )
    assert result.exit_code == 1
    assert "invalid configuration" in result.output
