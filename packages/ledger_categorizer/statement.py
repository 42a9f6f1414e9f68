"""Statement of activity: roll categorized records up the chart by month.

Layout, per section (``income`` then ``expenses``)::

    HEADER            section title (root account name)
    ACCOUNT_SUMMARY   every account below the root, depth-first pre-order;
    TRANSACTION_DETAIL  one per posting, directly under its leaf's summary
    TOTAL             "Total <section>"
    BLANK

followed by a single ``Net Income`` TOTAL row.

Sign convention: record amounts are signed minor units (income positive,
expenses negative) and summary/detail rows carry them unchanged. The two
section totals are reported as positive-for-normal magnitudes
(``Total Income = sum(income)``, ``Total Expenses = -sum(expenses)``) so
``Net Income = Total Income - Total Expenses`` holds column by column.

The aggregation is a pure function of the record sequence and the chart.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence

from .chart import ROOT_KEYS, AccountNode, ChartOfAccounts
from .errors import MalformedDateFault
from .logging_setup import get_logger
from .models import Records, RowKind, Statement, StatementRow, TransactionRecord

NET_LABEL = "Net Income"

_logger = get_logger("ledger_categorizer.statement")


def year_month(record: TransactionRecord) -> str:
    """Return ``YYYY-MM`` for ``record`` or raise :class:`MalformedDateFault`."""

    if record.date is None:
        raise MalformedDateFault(
            "record date is missing or unparseable",
            key=record.idempotency_key or None,
            step="aggregate",
        )
    return f"{record.date.year:04d}-{record.date.month:02d}"


def month_columns(records: Iterable[TransactionRecord]) -> tuple[str, ...]:
    """Sorted distinct months across ``records``; months without records are absent."""

    return tuple(sorted({year_month(r) for r in records}))


class _Buckets:
    """Direct postings per account, one vector per account over the month columns."""

    def __init__(self, months: Sequence[str]) -> None:
        self.months = tuple(months)
        self._col = {m: i for i, m in enumerate(self.months)}
        self.direct: dict[str, list[int]] = defaultdict(lambda: [0] * len(self.months))
        self.details: dict[str, list[tuple[str, int, TransactionRecord]]] = defaultdict(list)

    def add(self, seq: int, record: TransactionRecord, account_id: str) -> None:
        month = year_month(record)
        self.direct[account_id][self._col[month]] += record.amount or 0
        date_s = record.date.isoformat() if record.date is not None else month
        self.details[account_id].append((date_s, seq, record))

    def one_hot(self, record: TransactionRecord) -> tuple[int, ...]:
        values = [0] * len(self.months)
        values[self._col[year_month(record)]] = record.amount or 0
        return tuple(values)


def _bucket(records: Records, chart: ChartOfAccounts, months: Sequence[str]) -> _Buckets:
    buckets = _Buckets(months)
    for seq, record in enumerate(records):
        # Validate the date first so an uncategorized record with a bad date
        # still fails the run.
        year_month(record)
        aid = record.account_id
        if not aid:
            _logger.warning(
                "statement:uncategorized key=%s", record.idempotency_key or f"#{seq}"
            )
            continue
        node = chart.resolve_by_id(aid)
        if node is None:
            _logger.warning(
                "statement:unknown_account key=%s account_id=%s",
                record.idempotency_key or f"#{seq}",
                aid,
            )
            continue
        if not node.is_leaf:
            _logger.warning(
                "statement:non_leaf_posting key=%s account_id=%s",
                record.idempotency_key or f"#{seq}",
                aid,
            )
        if record.amount is None:
            _logger.warning(
                "statement:missing_amount key=%s", record.idempotency_key or f"#{seq}"
            )
        buckets.add(seq, record, aid)
    return buckets


def _rollup(node: AccountNode, buckets: _Buckets, memo: dict[str, tuple[int, ...]]) -> tuple[int, ...]:
    cached = memo.get(node.id)
    if cached is not None:
        return cached
    totals = list(buckets.direct.get(node.id, [0] * len(buckets.months)))
    for child in node.children.values():
        for i, v in enumerate(_rollup(child, buckets, memo)):
            totals[i] += v
    out = tuple(totals)
    memo[node.id] = out
    return out


def _emit_account(
    node: AccountNode,
    level: int,
    buckets: _Buckets,
    memo: dict[str, tuple[int, ...]],
    rows: list[StatementRow],
) -> None:
    rows.append(
        StatementRow(
            kind=RowKind.ACCOUNT_SUMMARY,
            label=node.name,
            level=level,
            account_id=node.id,
            monthly_values=_rollup(node, buckets, memo),
        )
    )
    if node.is_leaf:
        for date_s, _seq, record in sorted(buckets.details.get(node.id, []), key=lambda t: t[:2]):
            rows.append(
                StatementRow(
                    kind=RowKind.TRANSACTION_DETAIL,
                    label="",
                    level=level + 1,
                    account_id=node.id,
                    date=date_s,
                    description=record.description,
                    monthly_values=buckets.one_hot(record),
                    is_collapsed_by_default=True,
                )
            )
        return
    for child in node.children.values():
        _emit_account(child, level + 1, buckets, memo, rows)


def aggregate(records: Records, chart: ChartOfAccounts) -> list[StatementRow]:
    """Return the ordered statement rows for ``records``.

    Raises :class:`MalformedDateFault` when any record lacks a usable date.
    """

    return list(build_statement(records, chart).rows)


def build_statement(records: Records, chart: ChartOfAccounts) -> Statement:
    months = month_columns(records)
    buckets = _bucket(records, chart, months)
    memo: dict[str, tuple[int, ...]] = {}
    rows: list[StatementRow] = []
    section_totals: dict[str, tuple[int, ...]] = {}

    for key in ROOT_KEYS:
        root = chart.roots[key]
        rows.append(StatementRow(kind=RowKind.HEADER, label=root.name, account_id=root.id))
        if root.is_leaf:
            _emit_account(root, 1, buckets, memo, rows)
        else:
            for child in root.children.values():
                _emit_account(child, 1, buckets, memo, rows)
        raw = _rollup(root, buckets, memo)
        total = raw if key == "income" else tuple(-v for v in raw)
        section_totals[key] = total
        rows.append(
            StatementRow(
                kind=RowKind.TOTAL,
                label=f"Total {root.name}",
                account_id=root.id,
                monthly_values=total,
            )
        )
        rows.append(StatementRow(kind=RowKind.BLANK, label=""))

    income, expenses = section_totals["income"], section_totals["expenses"]
    rows.append(
        StatementRow(
            kind=RowKind.TOTAL,
            label=NET_LABEL,
            monthly_values=tuple(i - e for i, e in zip(income, expenses, strict=True)),
        )
    )
    _logger.info(
        "statement:built records=%d months=%d rows=%d", len(records), len(months), len(rows)
    )
    return Statement(months=months, rows=tuple(rows))


__all__ = ["NET_LABEL", "year_month", "month_columns", "aggregate", "build_statement"]
