"""Idempotent, resumable categorization of transaction records.

Per transaction the engine walks a small state machine::

    PENDING -> SKIPPED                               (key already in the store)
    PENDING -> CLASSIFIED -> PERSISTED               (oracle decided outright)
    PENDING -> AWAITING_CLARIFICATION -> CLASSIFIED -> PERSISTED

Only the first clarifying question the oracle proposes is ever asked, so a
transaction costs at most one human round-trip and two oracle calls. The
record is mutated and appended only after a final, chart-validated decision
exists; an oracle failure leaves the record untouched and nothing persisted.

Transactions are processed strictly sequentially in input order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from .chart import ChartOfAccounts
from .errors import OracleFault
from .logging_setup import get_logger
from .models import CategorizationResult, OracleDecision, ReceiptExtraction, TransactionRecord
from .normalizers import format_cents, is_blank, is_url
from .oracle import Classifier
from .persistence import LedgerStore, compute_idempotency_key
from .receipts import ReceiptEnricher
from .term_ui import AnswerSource, interpret_answer

_logger = get_logger("ledger_categorizer.categorize")

_T = TypeVar("_T")


class TransactionState(StrEnum):
    PENDING = "pending"
    SKIPPED = "skipped"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    CLASSIFIED = "classified"
    PERSISTED = "persisted"


@dataclass(slots=True)
class TransactionOutcome:
    key: str
    state: TransactionState
    result: CategorizationResult | None = None


@dataclass(slots=True)
class RunSummary:
    outcomes: list[TransactionOutcome] = field(default_factory=list)

    def _count(self, state: TransactionState) -> int:
        return sum(1 for o in self.outcomes if o.state == state)

    @property
    def persisted(self) -> int:
        return self._count(TransactionState.PERSISTED)

    @property
    def skipped(self) -> int:
        return self._count(TransactionState.SKIPPED)

    @property
    def clarified(self) -> int:
        return sum(
            1
            for o in self.outcomes
            if o.result is not None and o.result.clarifying_question is not None
        )


def build_payload(
    record: TransactionRecord,
    receipts: Mapping[str, ReceiptExtraction | None] | None = None,
) -> dict[str, Any]:
    """Serialize ``record`` for the oracle.

    URL-valued and empty fields are stripped to bound the payload size. The
    amount is rendered in currency units as a signed string (``-12.50``):
    positive is income, negative is expense. Extracted receipts are folded
    in under ``receipts`` so the oracle can cross-check totals.
    """

    payload: dict[str, Any] = {}
    if record.date is not None:
        payload["date"] = record.date.isoformat()
    if record.amount is not None:
        payload["amount"] = format_cents(record.amount)
    if not is_blank(record.category):
        payload["category"] = record.category
    for k, v in record.extra_fields.items():
        if k in payload or is_blank(v) or is_url(v):
            continue
        payload[k] = v
    if receipts:
        extracted = {
            name: ex.model_dump(mode="json", exclude_none=True)
            for name, ex in receipts.items()
            if ex is not None
        }
        if extracted:
            payload["receipts"] = extracted
    return payload


class CategorizationEngine:
    """Assign chart accounts to records and persist them exactly once."""

    def __init__(
        self,
        *,
        classifier: Classifier,
        chart: ChartOfAccounts,
        store: LedgerStore,
        answers: AnswerSource,
        enricher: ReceiptEnricher | None = None,
    ) -> None:
        self.classifier = classifier
        self.chart = chart
        self.store = store
        self.answers = answers
        self.enricher = enricher

    def _call_oracle(self, fn: Callable[[], _T], *, key: str, step: str) -> _T:
        try:
            return fn()
        except OracleFault as e:
            if e.key is None:
                e.key = key
            if e.step is None:
                e.step = step
            raise
        except Exception as e:
            raise OracleFault(f"classifier call failed: {e}", key=key, step=step) from e

    def _resolve(self, decision: OracleDecision, *, key: str, step: str) -> tuple[str, str]:
        account_id = decision.account_id.strip()
        node = self.chart.resolve_by_id(account_id)
        if node is None:
            raise OracleFault(
                f"classifier returned unknown account id {account_id!r}", key=key, step=step
            )
        # Only leaves take postings; parents are rollups.
        if not node.is_leaf:
            raise OracleFault(
                f"classifier returned parent account {account_id!r} ({node.name}); "
                "a leaf account is required",
                key=key,
                step=step,
            )
        return account_id, self.chart.full_path(account_id) or node.name

    def categorize_record(
        self,
        record: TransactionRecord,
        *,
        receipts: Mapping[str, ReceiptExtraction | None] | None = None,
    ) -> CategorizationResult:
        """Decide the account for ``record`` without mutating or persisting it.

        Raises :class:`OracleFault` when a classifier call fails, returns a
        malformed decision, or names an account that is not in the chart.
        """

        key = record.idempotency_key or compute_idempotency_key(record)
        payload = build_payload(record, receipts)

        decision = self._call_oracle(
            lambda: self.classifier.classify(payload, self.chart), key=key, step="classify"
        )
        if not decision.questions:
            account_id, name = self._resolve(decision, key=key, step="classify")
            return CategorizationResult(account_id=account_id, account_name=name)

        question = decision.questions[0]
        if len(decision.questions) > 1:
            _logger.debug(
                "categorize:questions_discarded key=%s count=%d",
                key,
                len(decision.questions) - 1,
            )
        _logger.info("categorize:%s key=%s", TransactionState.AWAITING_CLARIFICATION, key)
        raw = self.answers.ask(question.text, list(question.options), context=payload)
        answer = interpret_answer(raw, question.options)

        final = self._call_oracle(
            lambda: self.classifier.clarify(
                payload, self.chart, question=question.text, answer=answer
            ),
            key=key,
            step="clarify",
        )
        account_id, name = self._resolve(final, key=key, step="clarify")
        return CategorizationResult(
            account_id=account_id,
            account_name=name,
            clarifying_question=question,
            answer=answer,
        )

    def categorize_transactions(self, records: Iterable[TransactionRecord]) -> RunSummary:
        """Categorize and persist every record not already in the store.

        Records are handled in input order. The first non-enrichment fault
        stops the run; everything appended before it stays durable, so a
        rerun resumes where this one stopped.
        """

        summary = RunSummary()
        self.store.load_existing_keys()
        for record in records:
            key = record.idempotency_key or compute_idempotency_key(record)
            record.idempotency_key = key
            if self.store.contains(key):
                _logger.info("categorize:skip key=%s", key)
                summary.outcomes.append(TransactionOutcome(key, TransactionState.SKIPPED))
                continue

            receipts = self.enricher.enrich(record) if self.enricher is not None else None
            result = self.categorize_record(record, receipts=receipts)
            _logger.info(
                "categorize:classified key=%s account_id=%s clarified=%s",
                key,
                result.account_id,
                result.clarifying_question is not None,
            )

            record.account_id = result.account_id
            record.account_name = result.account_name
            self.store.append(record)
            summary.outcomes.append(TransactionOutcome(key, TransactionState.PERSISTED, result))

        _logger.info(
            "categorize:done persisted=%d skipped=%d clarified=%d",
            summary.persisted,
            summary.skipped,
            summary.clarified,
        )
        return summary


__all__ = [
    "TransactionState",
    "TransactionOutcome",
    "RunSummary",
    "CategorizationEngine",
    "build_payload",
]
