"""Fault taxonomy for the categorization and statement pipeline.

Faults local to an optional enrichment step (``EnrichmentFault``) are caught
and logged where they occur. Every other fault propagates to the caller with
enough context (idempotency key, pipeline step) to resume a run manually.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all pipeline faults."""

    def __init__(self, message: str, *, key: str | None = None, step: str | None = None) -> None:
        super().__init__(message)
        self.key = key
        self.step = step

    def __str__(self) -> str:
        base = super().__str__()
        ctx = [f"{name}={val}" for name, val in (("step", self.step), ("key", self.key)) if val]
        return f"{base} ({', '.join(ctx)})" if ctx else base


class InputFault(LedgerError):
    """Source ledger is empty, missing a header, or cannot be parsed."""


class MalformedDateFault(LedgerError):
    """A categorized record's date cannot be bucketed into a calendar month."""


class OracleFault(LedgerError):
    """The classifier oracle failed or returned a result of the wrong shape."""


class EnrichmentFault(LedgerError):
    """Receipt download, conversion, or extraction failed."""


class IOFault(LedgerError):
    """The ledger store (or another local file) is missing or unwritable."""


class ChartIntegrityError(LedgerError):
    """A chart of accounts definition violates the unique-id invariant."""


__all__ = [
    "LedgerError",
    "InputFault",
    "MalformedDateFault",
    "OracleFault",
    "EnrichmentFault",
    "IOFault",
    "ChartIntegrityError",
]
