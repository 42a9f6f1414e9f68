"""Chart of accounts: an immutable two-root account tree and its resolver.

The chart is constructed once (from JSON or a nested mapping) and then shared
by reference with every component that needs it. Nothing here mutates a
chart after construction.

Resolution is backed by an index built with a single pre-order depth-first
traversal over both roots. The traversal carries each node's ancestor names
down with it, so ``full_path`` is a true root-to-node path for nodes at any
depth.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from importlib import resources
from os import PathLike
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import ChartIntegrityError

PATH_SEPARATOR = " > "

# Top-level keys of the chart, in statement order.
ROOT_KEYS: tuple[str, ...] = ("income", "expenses")

_DEFAULT_SEED = "nonprofit_chart.v1.json"


@dataclass(frozen=True, slots=True, eq=False)
class AccountNode:
    """A single account in the chart.

    ``children`` is an ordered, read-only mapping of child key to node. Leaf
    accounts (no children) are the only accounts that receive direct
    postings in the statement's detail rows.
    """

    id: str
    name: str
    key: str = ""
    children: Mapping[str, AccountNode] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.children, MappingProxyType):
            object.__setattr__(self, "children", MappingProxyType(dict(self.children)))

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self) -> Iterator[AccountNode]:
        """Yield this node and all descendants in pre-order."""

        yield self
        for child in self.children.values():
            yield from child.walk()


@dataclass(frozen=True, slots=True)
class ResolvedAccount:
    node: AccountNode
    # Names from the root down to and including ``node``.
    lineage: tuple[str, ...]
    depth: int

    @property
    def path(self) -> str:
        return PATH_SEPARATOR.join(self.lineage)


class ChartOfAccounts:
    """Immutable registry of account nodes under the ``income``/``expenses`` roots."""

    __slots__ = ("_roots", "_index")

    def __init__(self, roots: Mapping[str, AccountNode]) -> None:
        missing = [k for k in ROOT_KEYS if k not in roots]
        if missing:
            raise ChartIntegrityError(f"chart is missing root section(s): {', '.join(missing)}")
        extra = [k for k in roots if k not in ROOT_KEYS]
        if extra:
            raise ChartIntegrityError(f"chart has unexpected root section(s): {', '.join(extra)}")
        self._roots: Mapping[str, AccountNode] = MappingProxyType(
            {k: roots[k] for k in ROOT_KEYS}
        )
        self._index: Mapping[str, ResolvedAccount] = MappingProxyType(self._build_index())

    def _build_index(self) -> dict[str, ResolvedAccount]:
        index: dict[str, ResolvedAccount] = {}
        # Explicit stack of (node, ancestor names); children pushed in reverse
        # so pops come out in pre-order.
        stack: list[tuple[AccountNode, tuple[str, ...]]] = [
            (root, ()) for root in reversed(list(self._roots.values()))
        ]
        while stack:
            node, ancestors = stack.pop()
            lineage = ancestors + (node.name,)
            if node.id in index:
                first = index[node.id]
                raise ChartIntegrityError(
                    f"duplicate account id {node.id!r}: "
                    f"{first.path!r} and {PATH_SEPARATOR.join(lineage)!r}"
                )
            index[node.id] = ResolvedAccount(node=node, lineage=lineage, depth=len(ancestors))
            for child in reversed(list(node.children.values())):
                stack.append((child, lineage))
        return index

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ChartOfAccounts:
        """Build a chart from a nested mapping.

        Each node is ``{"id": ..., "name": ..., "children": {key: node}}``;
        ``subAccounts`` is accepted as an alias for ``children``.
        """

        if not isinstance(data, Mapping):
            raise ChartIntegrityError("chart definition must be a JSON object")
        return cls({key: _node_from_mapping(key, raw) for key, raw in data.items()})

    @classmethod
    def from_json(cls, path: str | PathLike[str]) -> ChartOfAccounts:
        with Path(path).open("r", encoding="utf-8") as f:
            return cls.from_mapping(json.load(f))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def roots(self) -> Mapping[str, AccountNode]:
        return self._roots

    def resolve_by_id(self, account_id: str) -> AccountNode | None:
        """Return the node with ``account_id`` or ``None`` when absent."""

        hit = self._index.get(str(account_id).strip())
        return hit.node if hit is not None else None

    def resolve(self, account_id: str) -> ResolvedAccount | None:
        return self._index.get(str(account_id).strip())

    def full_path(self, account_id: str, *, separator: str = PATH_SEPARATOR) -> str | None:
        """Return ``"Root > ... > Node"`` for ``account_id`` or ``None`` when absent."""

        hit = self.resolve(account_id)
        if hit is None:
            return None
        return separator.join(hit.lineage)

    def __contains__(self, account_id: object) -> bool:
        return isinstance(account_id, str) and account_id.strip() in self._index

    def account_ids(self) -> list[str]:
        """All account ids in pre-order."""

        return list(self._index.keys())

    def leaf_ids(self) -> list[str]:
        return [aid for aid, hit in self._index.items() if hit.node.is_leaf]

    def render_outline(self) -> str:
        """Render the chart as an indented, human/LLM-readable outline.

        One line per account, ``<indent>- <id> <name>``, two spaces per level.
        """

        lines: list[str] = []
        for hit in self._index.values():
            lines.append(f"{'  ' * hit.depth}- {hit.node.id} {hit.node.name}")
        return "\n".join(lines)


def _node_from_mapping(key: str, raw: Any) -> AccountNode:
    if not isinstance(raw, Mapping):
        raise ChartIntegrityError(f"account {key!r} must be an object")
    node_id = str(raw.get("id") or "").strip()
    name = str(raw.get("name") or "").strip()
    if not node_id or not name:
        raise ChartIntegrityError(f"account {key!r} requires non-empty 'id' and 'name'")
    kids_raw = raw.get("children", raw.get("subAccounts")) or {}
    if not isinstance(kids_raw, Mapping):
        raise ChartIntegrityError(f"children of account {node_id!r} must be an object")
    children = {k: _node_from_mapping(k, v) for k, v in kids_raw.items()}
    return AccountNode(id=node_id, name=name, key=key, children=children)


def load_default_chart() -> ChartOfAccounts:
    """Load the bundled nonprofit chart of accounts."""

    seed = resources.files("ledger_categorizer").joinpath("seeds", _DEFAULT_SEED)
    with seed.open("r", encoding="utf-8") as f:
        return ChartOfAccounts.from_mapping(json.load(f))


__all__ = [
    "AccountNode",
    "ChartOfAccounts",
    "ResolvedAccount",
    "PATH_SEPARATOR",
    "ROOT_KEYS",
    "load_default_chart",
]
