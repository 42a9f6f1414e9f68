"""Data models and type aliases for ``ledger_categorizer``.

Three families live here:

- The normalized transaction record that flows from ingest through
  categorization into the ledger store and the statement.
- Typed, validated (pydantic) views of classifier oracle output.
- The row model of the aggregated statement of activity.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Transaction record
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class TransactionRecord:
    """One ledger entry, normalized at the input boundary.

    ``amount`` is signed integer minor units (cents): positive is income,
    negative is expense. ``extra_fields`` keeps every other source column
    verbatim and in source order. ``account_id``/``account_name`` stay
    ``None`` until the categorization engine assigns them, once.
    """

    date: date | None
    amount: int | None
    category: str | None = None
    account_id: str | None = None
    account_name: str | None = None
    extra_fields: dict[str, Any] = field(default_factory=dict)
    idempotency_key: str = ""

    def field_ci(self, name: str) -> Any:
        """Return the first extra field whose name matches ``name`` case-insensitively."""

        target = name.lower()
        for k, v in self.extra_fields.items():
            if k.lower() == target:
                return v
        return None

    @property
    def external_id(self) -> str | None:
        raw = self.field_ci("id")
        if raw is None:
            return None
        s = str(raw).strip()
        return s or None

    @property
    def description(self) -> str | None:
        for name in ("description", "memo"):
            raw = self.field_ci(name)
            if raw is not None and str(raw).strip():
                return str(raw).strip()
        return None


@dataclass(frozen=True, slots=True)
class FieldMapping:
    """Which source columns hold the transaction date and amount."""

    date_field: str
    amount_field: str


# ---------------------------------------------------------------------------
# Classifier oracle output (validated)
# ---------------------------------------------------------------------------


class ClarifyingQuestion(BaseModel):
    """A multiple-choice question the oracle wants answered before deciding."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    text: str
    options: list[str] = []

    @field_validator("text")
    @classmethod
    def _text_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question text must be non-empty")
        return v

    @field_validator("options")
    @classmethod
    def _clean_options(cls, v: list[str]) -> list[str]:
        return [o.strip() for o in v if isinstance(o, str) and o.strip()]


class OracleDecision(BaseModel):
    """A single classifier decision: tentative account plus candidate questions.

    ``account_name`` is advisory; the engine re-resolves the name from the
    chart using ``account_id``.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    account_id: str
    account_name: str = ""
    questions: list[ClarifyingQuestion] = []

    @field_validator("account_id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("account_id must be non-empty")
        return v


@dataclass(frozen=True, slots=True)
class CategorizationResult:
    """Final outcome of categorizing one transaction (never persisted directly)."""

    account_id: str
    account_name: str
    clarifying_question: ClarifyingQuestion | None = None
    answer: str | None = None


class ReceiptLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    description: str
    quantity: float | None = None
    amount: float | None = None


class ReceiptExtraction(BaseModel):
    """Structured view of a receipt image, as extracted by the oracle."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    vendor: str | None = None
    date: str | None = None
    currency: str | None = None
    subtotal: float | None = None
    tax: float | None = None
    total: float | None = None
    line_items: list[ReceiptLineItem] = []


# ---------------------------------------------------------------------------
# Statement of activity
# ---------------------------------------------------------------------------


class RowKind(StrEnum):
    HEADER = "header"
    ACCOUNT_SUMMARY = "account_summary"
    TRANSACTION_DETAIL = "transaction_detail"
    TOTAL = "total"
    BLANK = "blank"


@dataclass(frozen=True, slots=True)
class StatementRow:
    """One row of the statement grid; ordering defines the sheet layout.

    ``monthly_values`` aligns with the statement's month columns and is
    empty for header and blank rows. Values are integer minor units.
    """

    kind: RowKind
    label: str
    level: int = 0
    account_id: str | None = None
    date: str | None = None
    description: str | None = None
    monthly_values: tuple[int, ...] = ()
    is_collapsed_by_default: bool = False


@dataclass(frozen=True, slots=True)
class Statement:
    """Month columns (``YYYY-MM``, ascending) plus the ordered rows."""

    months: tuple[str, ...]
    rows: tuple[StatementRow, ...]

    def find(self, kind: RowKind, label: str) -> StatementRow | None:
        for row in self.rows:
            if row.kind == kind and row.label == label:
                return row
        return None

    def summary_for(self, account_id: str) -> StatementRow | None:
        for row in self.rows:
            if row.kind == RowKind.ACCOUNT_SUMMARY and row.account_id == account_id:
                return row
        return None


Records: TypeAlias = Sequence[TransactionRecord]


__all__ = [
    "TransactionRecord",
    "FieldMapping",
    "ClarifyingQuestion",
    "OracleDecision",
    "CategorizationResult",
    "ReceiptLineItem",
    "ReceiptExtraction",
    "RowKind",
    "StatementRow",
    "Statement",
    "Records",
]
