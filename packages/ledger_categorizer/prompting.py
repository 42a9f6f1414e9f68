"""Prompt construction and response schemas for the classifier oracle.

This module builds:
- A deterministic JSON serialization of the transaction payload.
- The system instructions and user content for each oracle call (field
  identification, categorization, clarification follow-up, receipt
  extraction).
- Strict ``response_format`` (JSON Schema) objects for the OpenAI Responses
  API. Account ids are constrained to an enum of the chart's ids.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any, TypeAlias

from .chart import ChartOfAccounts

ResponseFormat: TypeAlias = dict[str, Any]

BEGIN_TX = "BEGIN_TRANSACTION_JSON\n"
END_TX = "\nEND_TRANSACTION_JSON"


def serialize_payload(payload: Mapping[str, Any]) -> str:
    """Serialize a transaction payload as JSON, preserving key order."""

    return json.dumps(payload, ensure_ascii=False, default=str)


def _delimited(payload: Mapping[str, Any]) -> str:
    return f"{BEGIN_TX}{serialize_payload(payload)}{END_TX}"


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------


def build_system_instructions() -> str:
    return (
        "You are a bookkeeper for a nonprofit organization. You prize accuracy and "
        "reliability of the books so the money can be spent as effectively as possible. "
        "Assign each transaction to exactly one account from the provided chart of "
        "accounts. Only leaf accounts (those without sub-accounts) may receive a "
        "transaction. Never invent accounts. "
        "Amounts are signed: positive values are income, negative values are expenses. "
        "Output JSON only that conforms to the specified schema."
    )


def build_categorize_content(payload: Mapping[str, Any], chart: ChartOfAccounts) -> str:
    """User content for the first categorization call."""

    return (
        "Given the following transaction and chart of accounts, determine the account "
        "name and account ID for the transaction.\n\n"
        "The staff are very busy, so if you can categorize accurately without asking "
        "any questions, do so and return an empty questions list. If you need more "
        "information, ask one well-thought-out multiple-choice follow-up question. "
        "You only get one chance to ask, so make it count. Keep the question concise, "
        "don't repeat transaction details, and don't offer 'other' as an option.\n\n"
        f"Chart of accounts:\n{chart.render_outline()}\n\n"
        f"Transaction:\n{_delimited(payload)}\n"
    )


def build_clarify_content(
    payload: Mapping[str, Any],
    chart: ChartOfAccounts,
    *,
    question: str,
    answer: str,
) -> str:
    """User content for the follow-up call that incorporates the human answer."""

    return (
        "Given the following transaction, chart of accounts, and the user's answer to "
        "a clarifying question, determine the final account name and account ID.\n\n"
        f"Chart of accounts:\n{chart.render_outline()}\n\n"
        f"Transaction:\n{_delimited(payload)}\n\n"
        f"Question: {question}\n"
        f"User's answer: {answer}\n"
    )


def build_identify_fields_content(headers: Sequence[str]) -> str:
    return (
        f"Given these CSV headers: {', '.join(headers)}\n"
        "Identify which header represents the transaction date and which represents "
        "the transaction amount/value. Answer with header names exactly as given."
    )


def build_receipt_instructions() -> str:
    return (
        "You extract structured data from receipt and invoice images. Report the "
        "vendor, the receipt date (YYYY-MM-DD when legible), the ISO currency code, "
        "subtotal, tax, total, and each line item. Use null for anything not legible. "
        "Output JSON only that conforms to the specified schema."
    )


# ---------------------------------------------------------------------------
# Response formats
# ---------------------------------------------------------------------------


def _account_enum(chart: ChartOfAccounts) -> list[str]:
    ids = chart.leaf_ids()
    if not ids:
        raise ValueError("chart must contain at least one leaf account")
    return ids


def build_categorize_format(chart: ChartOfAccounts) -> ResponseFormat:
    """Schema: ``{account_name, account_id, questions[{text, options[]}]}``."""

    return {
        "type": "json_schema",
        "name": "account_decision",
        "schema": {
            "type": "object",
            "properties": {
                "account_name": {
                    "type": "string",
                    "description": "The name of the account in the chart of accounts",
                },
                "account_id": {
                    "type": "string",
                    "enum": _account_enum(chart),
                    "description": "The ID of the account in the chart of accounts",
                },
                "questions": {
                    "type": "array",
                    "description": "Questions to ask the user if more information is needed",
                    "items": {
                        "type": "object",
                        "properties": {
                            "text": {"type": "string"},
                            "options": {"type": "array", "items": {"type": "string"}},
                        },
                        "required": ["text", "options"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["account_name", "account_id", "questions"],
            "additionalProperties": False,
        },
        "strict": True,
    }


def build_clarify_format(chart: ChartOfAccounts) -> ResponseFormat:
    """Schema for the follow-up call: final ``{account_name, account_id}`` only."""

    return {
        "type": "json_schema",
        "name": "final_account_decision",
        "schema": {
            "type": "object",
            "properties": {
                "account_name": {"type": "string"},
                "account_id": {"type": "string", "enum": _account_enum(chart)},
            },
            "required": ["account_name", "account_id"],
            "additionalProperties": False,
        },
        "strict": True,
    }


def build_identify_fields_format(headers: Sequence[str]) -> ResponseFormat:
    cols = [h for h in dict.fromkeys(headers) if h]
    if not cols:
        raise ValueError("headers must contain at least one non-blank name")
    return {
        "type": "json_schema",
        "name": "ledger_fields",
        "schema": {
            "type": "object",
            "properties": {
                "date_field": {"type": "string", "enum": cols},
                "amount_field": {"type": "string", "enum": cols},
            },
            "required": ["date_field", "amount_field"],
            "additionalProperties": False,
        },
        "strict": True,
    }


def build_receipt_format() -> ResponseFormat:
    nullable_num = {"type": ["number", "null"]}
    nullable_str = {"type": ["string", "null"]}
    return {
        "type": "json_schema",
        "name": "receipt_extraction",
        "schema": {
            "type": "object",
            "properties": {
                "vendor": nullable_str,
                "date": nullable_str,
                "currency": nullable_str,
                "subtotal": nullable_num,
                "tax": nullable_num,
                "total": nullable_num,
                "line_items": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "description": {"type": "string"},
                            "quantity": nullable_num,
                            "amount": nullable_num,
                        },
                        "required": ["description", "quantity", "amount"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": [
                "vendor",
                "date",
                "currency",
                "subtotal",
                "tax",
                "total",
                "line_items",
            ],
            "additionalProperties": False,
        },
        "strict": True,
    }


__all__ = [
    "BEGIN_TX",
    "END_TX",
    "serialize_payload",
    "build_system_instructions",
    "build_categorize_content",
    "build_clarify_content",
    "build_identify_fields_content",
    "build_receipt_instructions",
    "build_categorize_format",
    "build_clarify_format",
    "build_identify_fields_format",
    "build_receipt_format",
]
