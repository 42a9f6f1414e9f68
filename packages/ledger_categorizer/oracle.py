"""Classifier oracle: the capability interface and its OpenAI implementation.

Public API:
    - :class:`Classifier` (protocol used by the categorization engine)
    - :class:`OpenAIClassifier`

No side effects occur at import time (no client creation, no environment
reads). The OpenAI client is created lazily on first use.
"""

from __future__ import annotations

import base64
import json
import random
import time
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, TypeVar

from openai import OpenAI
from pydantic import BaseModel

from . import prompting
from .chart import ChartOfAccounts
from .config import DEFAULT_MODEL
from .errors import OracleFault
from .logging_setup import get_logger
from .models import FieldMapping, OracleDecision, ReceiptExtraction

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_logger = get_logger("ledger_categorizer.oracle")

_M = TypeVar("_M", bound=BaseModel)


class Classifier(Protocol):
    """Narrow request/response contract of the classifier oracle."""

    def identify_fields(self, headers: Sequence[str]) -> FieldMapping: ...

    def classify(self, payload: Mapping[str, Any], chart: ChartOfAccounts) -> OracleDecision: ...

    def clarify(
        self,
        payload: Mapping[str, Any],
        chart: ChartOfAccounts,
        *,
        question: str,
        answer: str,
    ) -> OracleDecision: ...

    def extract_receipt(self, jpeg: bytes) -> ReceiptExtraction: ...


class _FieldsOut(BaseModel):
    date_field: str
    amount_field: str


# ---- Internal helpers --------------------------------------------------------


def _extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON mapping from an OpenAI Responses SDK result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    Raises ``ValueError`` when no text is found or it is not a JSON object.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        first = resp.output[0] if getattr(resp, "output", None) else None
        content = getattr(first, "content", None)
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                text = txt_obj
            else:
                maybe_val = getattr(txt_obj, "value", None)
                if isinstance(maybe_val, str):
                    text = maybe_val
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output must be a JSON object")
    return decoded


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


class OpenAIClassifier:
    """Classifier backed by the OpenAI Responses API with strict JSON Schema output."""

    def __init__(self, *, model: str = DEFAULT_MODEL, client: Any | None = None) -> None:
        self.model = model
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def _call(
        self,
        *,
        step: str,
        instructions: str,
        user_input: Any,
        response_format: Mapping[str, Any],
        out_model: type[_M],
    ) -> _M:
        """Run one structured call with bounded retries.

        HTTP 429/5xx are retried with backoff. A response that is missing
        the structured decision (no text, invalid JSON, schema violation) is
        retried immediately. Both share the same attempt budget.
        """

        client = self._get_client()
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self.model,
                    instructions=instructions,
                    input=user_input,
                    text={"format": response_format},
                )
            except Exception as e:  # noqa: BLE001 - SDK raises many error types
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                    _logger.error(
                        "oracle:call_failed step=%s attempt=%d latency_ms=%.2f error=%s",
                        step,
                        attempt,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    raise OracleFault(f"oracle call failed: {e}", step=step) from e
                _logger.warning(
                    "oracle:call_retry step=%s attempt=%d latency_ms=%.2f error=%s",
                    step,
                    attempt,
                    dt_ms,
                    e.__class__.__name__,
                )
                _sleep_backoff(attempt)
                attempt += 1
                continue

            try:
                decoded = _extract_response_json_mapping(resp)
                out = out_model.model_validate(decoded)
            except ValueError as e:
                # pydantic.ValidationError subclasses ValueError
                if attempt >= _MAX_ATTEMPTS:
                    _logger.error(
                        "oracle:malformed_terminal step=%s attempts=%d error=%s",
                        step,
                        attempt,
                        e.__class__.__name__,
                    )
                    raise OracleFault(
                        f"oracle returned no usable decision after {attempt} attempts: {e}",
                        step=step,
                    ) from e
                _logger.warning("oracle:malformed_retry step=%s attempt=%d", step, attempt)
                attempt += 1
                continue

            _logger.debug(
                "oracle:call_done step=%s latency_ms=%.2f",
                step,
                (time.perf_counter() - t0) * 1000.0,
            )
            return out

    # ---- Classifier protocol ----------------------------------------------

    def identify_fields(self, headers: Sequence[str]) -> FieldMapping:
        out = self._call(
            step="identify_fields",
            instructions="You map spreadsheet headers to ledger fields. Output JSON only.",
            user_input=prompting.build_identify_fields_content(headers),
            response_format=prompting.build_identify_fields_format(headers),
            out_model=_FieldsOut,
        )
        return FieldMapping(date_field=out.date_field, amount_field=out.amount_field)

    def classify(self, payload: Mapping[str, Any], chart: ChartOfAccounts) -> OracleDecision:
        return self._call(
            step="classify",
            instructions=prompting.build_system_instructions(),
            user_input=prompting.build_categorize_content(payload, chart),
            response_format=prompting.build_categorize_format(chart),
            out_model=OracleDecision,
        )

    def clarify(
        self,
        payload: Mapping[str, Any],
        chart: ChartOfAccounts,
        *,
        question: str,
        answer: str,
    ) -> OracleDecision:
        return self._call(
            step="clarify",
            instructions=prompting.build_system_instructions(),
            user_input=prompting.build_clarify_content(
                payload, chart, question=question, answer=answer
            ),
            response_format=prompting.build_clarify_format(chart),
            out_model=OracleDecision,
        )

    def extract_receipt(self, jpeg: bytes) -> ReceiptExtraction:
        data_url = "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")
        user_input = [
            {
                "role": "user",
                "content": [
                    {"type": "input_text", "text": "Extract the receipt details."},
                    {"type": "input_image", "image_url": data_url},
                ],
            }
        ]
        return self._call(
            step="extract_receipt",
            instructions=prompting.build_receipt_instructions(),
            user_input=user_input,
            response_format=prompting.build_receipt_format(),
            out_model=ReceiptExtraction,
        )


__all__ = ["Classifier", "OpenAIClassifier", "DEFAULT_MODEL"]
