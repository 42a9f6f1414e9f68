"""Pytest configuration for test isolation.

The CLI and the store default to project-relative files (``processed.csv``,
``receipt_cache.json``) and read ``LEDGER_*`` / credential environment
variables. When tests run in the same working tree, those files and variables
could leak between tests (a later run would skip every transaction already in
a store written by an earlier one).

To keep tests hermetic, every test runs with its own temporary working
directory and a scrubbed environment via an autouse fixture.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `ledger_categorizer`
# is importable, followed by the repo root for `tests.helpers`.
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

_SCRUBBED_ENV = (
    "OPENAI_API_KEY",
    "HCB_TOKEN",
    "LEDGER_MODEL",
    "LEDGER_STORE_PATH",
    "LEDGER_RECEIPT_CACHE",
    "LEDGER_API_BASE_URL",
    "LEDGER_API_MAX_REQUESTS",
    "LEDGER_API_WINDOW_SECONDS",
    "LEDGER_CATEGORIZER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run each test from its own directory with no ledger/credential env vars."""

    for name in _SCRUBBED_ENV:
        monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "work"
    workdir.mkdir(parents=True, exist_ok=True)
    monkeypatch.chdir(os.fspath(workdir))
