from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from ledger_categorizer.categorize import CategorizationEngine, TransactionState, build_payload
from ledger_categorizer.chart import load_default_chart
from ledger_categorizer.errors import EnrichmentFault, OracleFault
from ledger_categorizer.models import ReceiptExtraction, TransactionRecord
from ledger_categorizer.persistence import LedgerStore, compute_idempotency_key
from ledger_categorizer.receipts import ReceiptCache, ReceiptEnricher
from tests.helpers.fakes import FakeClassifier, ScriptedAnswerSource, decision

CHART = load_default_chart()


def _rec(desc: str, amount: int, d: date = date(2024, 3, 5), **extra) -> TransactionRecord:
    r = TransactionRecord(date=d, amount=amount, extra_fields={"description": desc, **extra})
    r.idempotency_key = compute_idempotency_key(r)
    return r


def _records() -> list[TransactionRecord]:
    return [
        _rec("MacBook Pro", -120000),
        _rec("AWS", -5000),
        _rec("Donation via website", 2500, d=date(2024, 4, 1)),
    ]


def _by_description(payload) -> object:
    desc = payload["description"]
    if "MacBook" in desc:
        return decision("5410", name="Computers")
    if "AWS" in desc:
        return decision("5430")
    return decision("4200")


def _engine(tmp_path: Path, classifier, answers=None, enricher=None) -> CategorizationEngine:
    return CategorizationEngine(
        classifier=classifier,
        chart=CHART,
        store=LedgerStore(tmp_path / "processed.csv"),
        answers=answers or ScriptedAnswerSource(),
        enricher=enricher,
    )


def test_classifies_and_persists_in_input_order(tmp_path: Path):
    fake = FakeClassifier(_by_description)
    summary = _engine(tmp_path, fake).categorize_transactions(_records())

    assert summary.persisted == 3
    assert summary.skipped == 0
    stored = LedgerStore(tmp_path / "processed.csv").load_records()
    assert [r.account_id for r in stored] == ["5410", "5430", "4200"]
    # The resolver's path is authoritative over the oracle's advisory name.
    assert stored[0].account_name == "Expenses > Technology > Staff Computers"
    assert stored[2].account_name == "Income > Web Donations"


def test_second_run_is_idempotent_and_store_unchanged(tmp_path: Path):
    _engine(tmp_path, FakeClassifier(_by_description)).categorize_transactions(_records())
    before = (tmp_path / "processed.csv").read_bytes()

    rerun = FakeClassifier(_by_description)
    summary = _engine(tmp_path, rerun).categorize_transactions(_records())

    assert summary.persisted == 0
    assert summary.skipped == 3
    assert rerun.classify_calls == []
    assert (tmp_path / "processed.csv").read_bytes() == before


def test_cosmetic_duplicates_within_one_run_are_skipped(tmp_path: Path):
    fake = FakeClassifier(_by_description)
    records = [_rec("AWS", -5000), _rec("  aws ", -5000)]
    summary = _engine(tmp_path, fake).categorize_transactions(records)
    assert [o.state for o in summary.outcomes] == [
        TransactionState.PERSISTED,
        TransactionState.SKIPPED,
    ]
    assert len(fake.classify_calls) == 1


def test_only_first_of_many_questions_is_asked(tmp_path: Path):
    first = decision(
        "5400",
        ("What was purchased?", ["A laptop", "Cloud hosting"]),
        ("Who used it?", ["Staff", "Volunteer"]),
        ("Was it a gift?", ["Yes", "No"]),
    )
    fake = FakeClassifier(first, resolve=lambda _p, _q, _a: decision("5410"))
    answers = ScriptedAnswerSource(["1"])

    summary = _engine(tmp_path, fake, answers).categorize_transactions([_rec("Apple Store", -120000)])

    assert len(answers.asked) == 1
    assert answers.asked[0]["question"] == "What was purchased?"
    assert answers.asked[0]["options"] == ["A laptop", "Cloud hosting"]
    assert answers.asked[0]["context"]["description"] == "Apple Store"
    assert summary.clarified == 1
    assert len(fake.clarify_calls) == 1


def test_numeric_answer_selects_option_and_free_text_passes_through(tmp_path: Path):
    q = ("What was purchased?", ["A laptop", "Cloud hosting"])
    fake = FakeClassifier(decision("5400", q), resolve=lambda _p, _q, _a: decision("5430"))
    answers = ScriptedAnswerSource(["2", "  a server rack  "])
    engine = _engine(tmp_path, fake, answers)

    engine.categorize_transactions([_rec("Vendor A", -100), _rec("Vendor B", -200)])

    assert [c["answer"] for c in fake.clarify_calls] == ["Cloud hosting", "a server rack"]
    assert all(c["question"] == "What was purchased?" for c in fake.clarify_calls)


def test_out_of_range_number_is_free_text(tmp_path: Path):
    q = ("Which?", ["A", "B"])
    fake = FakeClassifier(decision("5400", q), resolve=lambda _p, _q, _a: decision("5430"))
    engine = _engine(tmp_path, fake, ScriptedAnswerSource(["3"]))
    engine.categorize_transactions([_rec("X", -1)])
    assert fake.clarify_calls[0]["answer"] == "3"


def test_clarified_decision_overrides_first_guess(tmp_path: Path):
    fake = FakeClassifier(
        decision("5410", ("Laptop or hosting?", ["Laptop", "Hosting"])),
        resolve=lambda _p, _q, answer: decision("5430" if answer == "Hosting" else "5410"),
    )
    engine = _engine(tmp_path, fake, ScriptedAnswerSource(["2"]))
    summary = engine.categorize_transactions([_rec("Mystery vendor", -5000)])

    result = summary.outcomes[0].result
    assert result.account_id == "5430"
    assert result.account_name == "Expenses > Technology > Servers & Hosting"
    assert result.answer == "Hosting"
    assert LedgerStore(tmp_path / "processed.csv").load_records()[0].account_id == "5430"


def test_oracle_failure_persists_nothing_for_that_record(tmp_path: Path):
    def decide(payload):
        if payload["description"] == "AWS":
            raise OracleFault("no structured decision")
        return _by_description(payload)

    engine = _engine(tmp_path, FakeClassifier(decide))
    records = _records()
    with pytest.raises(OracleFault) as ei:
        engine.categorize_transactions(records)

    assert ei.value.key == records[1].idempotency_key
    assert ei.value.step == "classify"
    assert records[1].account_id is None
    stored = LedgerStore(tmp_path / "processed.csv").load_records()
    assert [r.account_id for r in stored] == ["5410"]

    # A rerun resumes with the remainder only.
    resumed = FakeClassifier(_by_description)
    summary = _engine(tmp_path, resumed).categorize_transactions(_records())
    assert summary.skipped == 1
    assert summary.persisted == 2
    assert [c["description"] for c in resumed.classify_calls] == ["AWS", "Donation via website"]


def test_unknown_account_id_is_oracle_fault(tmp_path: Path):
    engine = _engine(tmp_path, FakeClassifier(decision("9999")))
    with pytest.raises(OracleFault) as ei:
        engine.categorize_transactions([_rec("X", -1)])
    assert "9999" in str(ei.value)
    assert not (tmp_path / "processed.csv").exists()


def test_parent_account_is_refused_and_nothing_is_persisted(tmp_path: Path):
    engine = _engine(tmp_path, FakeClassifier(decision("5400", name="Technology")))
    with pytest.raises(OracleFault) as ei:
        engine.categorize_transactions([_rec("Cloud stuff", -5000)])
    assert ei.value.step == "classify"
    assert "5400" in str(ei.value)
    assert not (tmp_path / "processed.csv").exists()


def test_parent_account_after_clarification_is_refused(tmp_path: Path):
    fake = FakeClassifier(
        decision("5410", ("Which one?", ["Laptop", "Other"])),
        resolve=lambda _p, _q, _a: decision("5000"),
    )
    engine = _engine(tmp_path, fake, ScriptedAnswerSource(["2"]))
    with pytest.raises(OracleFault) as ei:
        engine.categorize_transactions([_rec("Something", -100)])
    assert ei.value.step == "clarify"
    assert not (tmp_path / "processed.csv").exists()


def test_unexpected_classifier_error_is_wrapped(tmp_path: Path):
    def boom(_payload):
        raise RuntimeError("network down")

    engine = _engine(tmp_path, FakeClassifier(boom))
    with pytest.raises(OracleFault) as ei:
        engine.categorize_transactions([_rec("X", -1)])
    assert isinstance(ei.value.__cause__, RuntimeError)


def test_payload_strips_urls_and_empty_fields_and_signs_amount():
    r = _rec(
        "Hosting",
        -5000,
        memo="",
        receipt_url="https://example.com/r.pdf",
        merchant="AWS",
    )
    payload = build_payload(r)
    assert payload == {
        "date": "2024-03-05",
        "amount": "-50.00",
        "description": "Hosting",
        "merchant": "AWS",
    }


class _FailingNormalizer:
    def normalize(self, url: str) -> bytes:
        raise EnrichmentFault("download failed", step="download")


class _StaticNormalizer:
    def normalize(self, url: str) -> bytes:
        return b"jpeg-bytes"


def test_enrichment_failure_is_recorded_as_none_and_categorization_proceeds(tmp_path: Path):
    fake = FakeClassifier(decision("5430"))
    enricher = ReceiptEnricher(
        classifier=fake,
        cache=ReceiptCache(tmp_path / "receipts.json"),
        normalizer=_FailingNormalizer(),
    )
    engine = _engine(tmp_path, fake, enricher=enricher)
    summary = engine.categorize_transactions(
        [_rec("AWS", -5000, id="tx1", receipt_url="https://example.com/r.png")]
    )
    assert summary.persisted == 1
    assert "receipts" not in fake.classify_calls[0]
    assert not (tmp_path / "receipts.json").exists()


def test_receipt_extraction_is_folded_into_payload(tmp_path: Path):
    fake = FakeClassifier(
        decision("5430"),
        receipt=lambda _b: ReceiptExtraction(vendor="Amazon Web Services", total=50.0, currency="USD"),
    )
    enricher = ReceiptEnricher(
        classifier=fake,
        cache=ReceiptCache(tmp_path / "receipts.json"),
        normalizer=_StaticNormalizer(),
    )
    engine = _engine(tmp_path, fake, enricher=enricher)
    engine.categorize_transactions(
        [_rec("AWS", -5000, id="tx1", receipt_url="https://example.com/r.png")]
    )
    receipts = fake.classify_calls[0]["receipts"]
    assert receipts["receipt_url"]["vendor"] == "Amazon Web Services"
    assert receipts["receipt_url"]["total"] == 50.0
    assert fake.receipt_calls == [b"jpeg-bytes"]
