"""Amount, date and text normalization shared by ingest, keys and the store.

Canonical representations chosen at the input boundary:

- amounts are signed integer minor units (cents); positive is income,
  negative is expense;
- dates are :class:`datetime.date` (persisted as ``YYYY-MM-DD``);
- free text used for matching is NFKC-normalized, whitespace-collapsed and
  trimmed.
"""

from __future__ import annotations

import unicodedata
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_DATE_FORMATS: tuple[str, ...] = ("%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d")


def to_decimal(raw: Any) -> Decimal:
    """Parse a currency string like ``"-$1,234.56"`` or ``"(12.00)"``.

    Raises ``ValueError`` when the value is empty or not numeric.
    """

    if raw is None:
        raise ValueError("amount is required")
    if isinstance(raw, bool):
        raise ValueError(f"invalid amount: {raw!r}")
    if isinstance(raw, (int, float, Decimal)):
        return Decimal(str(raw))
    s = str(raw).strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False

    # Strip leading sign, currency symbol and surrounding parentheses in any
    # order until stable.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.startswith("$"):
            s = s[1:].lstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    s = s.replace(",", "").replace(" ", "")
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return -abs(d) if negative else d


def to_cents(raw: Any, *, minor_units: bool = False) -> int | None:
    """Convert ``raw`` to signed integer cents, or ``None`` when unparseable.

    With ``minor_units=True`` the value is already expressed in cents (e.g.
    an ``amount_cents`` API field) and is only rounded to an integer.
    """

    try:
        d = to_decimal(raw)
    except ValueError:
        return None
    if not minor_units:
        d = d * 100
    return int(d.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    """Render cents as a signed decimal string with two places (``-12.50``)."""

    q = (Decimal(cents) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:.2f}"


def parse_date(raw: Any) -> date | None:
    """Parse ISO dates/datetimes and common US formats; ``None`` if unparseable."""

    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    s = str(raw).strip()
    if not s:
        return None
    iso = s[:-1] + "+00:00" if s.endswith("Z") else s
    try:
        return datetime.fromisoformat(iso).date()
    except ValueError:
        pass
    first = s.split()[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(first, fmt).date()
        except ValueError:
            continue
    return None


def normalize_text(raw: Any) -> str:
    """NFKC-normalize, collapse internal whitespace and trim."""

    if raw is None:
        return ""
    s = unicodedata.normalize("NFKC", str(raw))
    return " ".join(s.split())


def is_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    s = value.strip().lower()
    return s.startswith("http://") or s.startswith("https://")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


__all__ = [
    "to_decimal",
    "to_cents",
    "format_cents",
    "parse_date",
    "normalize_text",
    "is_url",
    "is_blank",
]
