"""Environment-driven settings for ``ledger_categorizer``.

Settings are read explicitly via :meth:`Settings.from_env`; nothing is read at
import time. The CLI loads a local ``.env`` (``python-dotenv``) before calling
it, and CLI options override individual values afterwards.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_MODEL = "gpt-4o"
DEFAULT_STORE_PATH = "processed.csv"
DEFAULT_RECEIPT_CACHE = "receipt_cache.json"
DEFAULT_API_BASE_URL = "https://hcb.hackclub.com/api/v4"
DEFAULT_API_MAX_REQUESTS = 10
DEFAULT_API_WINDOW_SECONDS = 1.0


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    raw = env.get(name)
    if raw is None:
        return None
    s = raw.strip()
    return s or None


def _env_number(env: Mapping[str, str], name: str, default: float, cast: type) -> float:
    raw = _env_str(env, name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    openai_api_key: str | None = None
    model: str = DEFAULT_MODEL
    hcb_token: str | None = None
    store_path: Path = Path(DEFAULT_STORE_PATH)
    receipt_cache_path: Path = Path(DEFAULT_RECEIPT_CACHE)
    api_base_url: str = DEFAULT_API_BASE_URL
    api_max_requests: int = DEFAULT_API_MAX_REQUESTS
    api_window_seconds: float = DEFAULT_API_WINDOW_SECONDS

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``env`` (defaults to ``os.environ``).

        Raises ``ValueError`` when a numeric variable is malformed or not
        positive.
        """

        e = os.environ if env is None else env
        return cls(
            openai_api_key=_env_str(e, "OPENAI_API_KEY"),
            model=_env_str(e, "LEDGER_MODEL") or DEFAULT_MODEL,
            hcb_token=_env_str(e, "HCB_TOKEN"),
            store_path=Path(_env_str(e, "LEDGER_STORE_PATH") or DEFAULT_STORE_PATH),
            receipt_cache_path=Path(
                _env_str(e, "LEDGER_RECEIPT_CACHE") or DEFAULT_RECEIPT_CACHE
            ),
            api_base_url=(_env_str(e, "LEDGER_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip(
                "/"
            ),
            api_max_requests=int(
                _env_number(e, "LEDGER_API_MAX_REQUESTS", DEFAULT_API_MAX_REQUESTS, int)
            ),
            api_window_seconds=float(
                _env_number(e, "LEDGER_API_WINDOW_SECONDS", DEFAULT_API_WINDOW_SECONDS, float)
            ),
        )

    def with_overrides(self, **overrides: object) -> Settings:
        """Return a copy with every non-``None`` override applied."""

        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


__all__ = ["Settings"]
