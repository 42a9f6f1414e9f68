"""Remote ledger source: paginated transaction fetch from an HCB-style API.

Endpoints (relative to the configured base URL)::

    GET /organizations/{org}/transactions?limit=25[&after=<last id>]
    GET /organizations/{org}/transactions/{id}/receipts

Listing pages are followed until the API reports ``has_more: false``; the
cursor is the id of the last transaction of the previous page. Every request
first takes a slot from the shared :class:`WindowRateLimiter`.
"""

from __future__ import annotations

import contextlib
import json
import os
from collections.abc import Iterable, Iterator, Mapping
from os import PathLike
from pathlib import Path
from typing import Any

import requests

from ..config import DEFAULT_API_BASE_URL
from ..errors import InputFault, IOFault
from ..logging_setup import get_logger
from ..ratelimit import WindowRateLimiter

PAGE_LIMIT = 25
_TIMEOUT_SEC = 30.0

_logger = get_logger("ledger_categorizer.ingest.remote")


class HcbLedgerSource:
    """Fetch organization transactions (with receipts) from the remote API."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        session: requests.Session | None = None,
        limiter: WindowRateLimiter | None = None,
        timeout: float = _TIMEOUT_SEC,
    ) -> None:
        if not token:
            raise ValueError("an API bearer token is required")
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {token}"})
        self._limiter = limiter
        self._timeout = timeout

    def _get(self, path: str, params: Mapping[str, Any] | None = None) -> requests.Response:
        if self._limiter is not None:
            self._limiter.acquire()
        return self._session.get(f"{self.base_url}{path}", params=params, timeout=self._timeout)

    def fetch_receipts(self, org_id: str, tx_id: str) -> list[Any]:
        """Return the receipts for one transaction; ``[]`` when the lookup fails."""

        try:
            resp = self._get(f"/organizations/{org_id}/transactions/{tx_id}/receipts")
        except requests.RequestException as e:
            _logger.warning("remote:receipts_failed org=%s tx=%s error=%s", org_id, tx_id, e)
            return []
        if not resp.ok:
            _logger.warning(
                "remote:receipts_failed org=%s tx=%s status=%s", org_id, tx_id, resp.status_code
            )
            return []
        try:
            data = resp.json()
        except ValueError:
            _logger.warning("remote:receipts_invalid_json org=%s tx=%s", org_id, tx_id)
            return []
        return data if isinstance(data, list) else []

    def iter_transactions(self, org_id: str) -> Iterator[dict[str, Any]]:
        """Yield every transaction of ``org_id`` with its ``receipts`` attached.

        Raises :class:`InputFault` when a listing page cannot be fetched or
        decoded.
        """

        after: str | None = None
        page = 0
        while True:
            params: dict[str, Any] = {"limit": PAGE_LIMIT}
            if after is not None:
                params["after"] = after
            try:
                resp = self._get(f"/organizations/{org_id}/transactions", params=params)
            except requests.RequestException as e:
                raise InputFault(
                    f"failed to list transactions for {org_id}: {e}", step="fetch"
                ) from e
            if not resp.ok:
                raise InputFault(
                    f"failed to list transactions for {org_id}: HTTP {resp.status_code}",
                    step="fetch",
                )
            try:
                body = resp.json()
            except ValueError as e:
                raise InputFault(
                    f"transaction listing for {org_id} was not JSON", step="fetch"
                ) from e

            if not isinstance(body, Mapping):
                raise InputFault(
                    f"transaction listing for {org_id} was not a JSON object", step="fetch"
                )
            items = [tx for tx in body.get("data") or [] if isinstance(tx, dict)]
            _logger.debug("remote:page org=%s page=%d items=%d", org_id, page, len(items))
            for tx in items:
                tx["receipts"] = self.fetch_receipts(org_id, str(tx.get("id")))
                yield tx

            page += 1
            if not body.get("has_more") or not items:
                return
            after = str(items[-1].get("id"))


def _write_json_atomic(path: Path, data: Any) -> None:
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, path)
    except Exception:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()
        raise


def fetch_organizations(
    orgs: Iterable[Mapping[str, Any]],
    source: HcbLedgerSource,
    out_path: str | PathLike[str],
) -> list[dict[str, Any]]:
    """Fetch every organization's transactions into a snapshot file.

    The snapshot is rewritten after each organization so an interrupted run
    keeps the organizations that completed.
    """

    out = Path(out_path)
    snapshot: list[dict[str, Any]] = []
    for org in orgs:
        org_id = str(org.get("id") or "").strip()
        if not org_id:
            raise InputFault("organization entry is missing an id", step="fetch")
        _logger.info("remote:org_start org=%s name=%s", org_id, org.get("name"))
        transactions = list(source.iter_transactions(org_id))
        snapshot.append({**org, "transactions": transactions})
        try:
            _write_json_atomic(out, snapshot)
        except OSError as e:
            raise IOFault(f"failed to write snapshot {out}: {e}", step="fetch") from e
        _logger.info("remote:org_done org=%s transactions=%d", org_id, len(transactions))
    return snapshot


def load_organizations(path: str | PathLike[str]) -> list[dict[str, Any]]:
    """Load the organization list (JSON array of ``{id, name, ...}``)."""

    src = Path(path)
    try:
        data = json.loads(src.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InputFault(f"organizations file not found: {src}", step="fetch") from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InputFault(f"failed to read organizations file {src}: {e}", step="fetch") from e
    if not isinstance(data, list) or not all(isinstance(o, Mapping) for o in data):
        raise InputFault("organizations file must be a JSON array of objects", step="fetch")
    return data


__all__ = ["PAGE_LIMIT", "HcbLedgerSource", "fetch_organizations", "load_organizations"]
