"""Best-effort receipt enrichment for transactions that link receipt images.

Pipeline per receipt URL field::

    cache lookup -> download -> normalize to JPEG -> oracle extraction -> cache

A cache hit short-circuits the download and the oracle call. Any failure
along the way is an :class:`~ledger_categorizer.errors.EnrichmentFault`,
logged and recorded as ``None``; failures are never cached so a later run can
retry them.

Cache file layout: a single JSON object keyed ``"<transactionId>-<fieldName>"``
whose values are :class:`~ledger_categorizer.models.ReceiptExtraction` dumps.
Writes target ``.tmp`` first and then ``os.replace`` into place.
"""

from __future__ import annotations

import contextlib
import io
import json
import os
from os import PathLike
from pathlib import Path
from typing import Any

import fitz  # PyMuPDF
import requests
from PIL import Image
from pillow_heif import register_heif_opener
from pydantic import ValidationError

from .errors import EnrichmentFault
from .logging_setup import get_logger
from .models import ReceiptExtraction, TransactionRecord
from .normalizers import is_url

_logger = get_logger("ledger_categorizer.receipts")

_DOWNLOAD_TIMEOUT_SEC: float = 30.0
_JPEG_QUALITY: int = 85
_PDF_ZOOM: float = 2.0


def is_receipt_url_field(name: str) -> bool:
    """Heuristic: the field name mentions a receipt URL but not a preview."""

    n = (name or "").lower()
    return "receipt" in n and "url" in n and "preview" not in n


def receipt_cache_key(record: TransactionRecord, field_name: str) -> str:
    tx_id = record.external_id or record.idempotency_key
    return f"{tx_id}-{field_name}"


class ReceiptCache:
    """Read-through JSON cache of receipt extractions."""

    def __init__(self, path: str | PathLike[str]) -> None:
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        data: dict[str, Any] = {}
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                _logger.warning("receipts:cache_unreadable path=%s error=%s", self.path, e)
                raw = {}
            if isinstance(raw, dict):
                data = raw
            else:
                _logger.warning("receipts:cache_invalid path=%s", self.path)
        self._data = data
        return data

    def get(self, key: str) -> ReceiptExtraction | None:
        value = self._load().get(key)
        if value is None:
            return None
        try:
            return ReceiptExtraction.model_validate(value)
        except ValidationError:
            _logger.warning("receipts:cache_entry_invalid key=%s", key)
            return None

    def put(self, key: str, extraction: ReceiptExtraction) -> None:
        data = self._load()
        data[key] = extraction.model_dump(mode="json")
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            raise

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in self._load()

    def __len__(self) -> int:
        return len(self._load())


class ImageNormalizer:
    """Download receipt files and convert them to RGB JPEG bytes.

    PDFs are rasterized from their first page with PyMuPDF; HEIC/HEIF images
    are decoded through the ``pillow-heif`` opener; every other format Pillow
    can open is re-encoded as JPEG.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout: float = _DOWNLOAD_TIMEOUT_SEC,
    ) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout
        register_heif_opener()

    def download(self, url: str) -> bytes:
        try:
            resp = self._session.get(url, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise EnrichmentFault(f"receipt download failed: {e}", step="download") from e
        return resp.content

    def to_jpeg(self, data: bytes) -> bytes:
        if not data:
            raise EnrichmentFault("receipt file is empty", step="convert")
        if data[:5] == b"%PDF-":
            data = self._rasterize_pdf(data)
        try:
            with Image.open(io.BytesIO(data)) as img:
                rgb = img.convert("RGB")
                out = io.BytesIO()
                rgb.save(out, format="JPEG", quality=_JPEG_QUALITY)
        except (OSError, ValueError) as e:
            # PIL.UnidentifiedImageError subclasses OSError
            raise EnrichmentFault(f"receipt image conversion failed: {e}", step="convert") from e
        return out.getvalue()

    def _rasterize_pdf(self, data: bytes) -> bytes:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                if doc.page_count < 1:
                    raise EnrichmentFault("receipt PDF has no pages", step="convert")
                pix = doc[0].get_pixmap(matrix=fitz.Matrix(_PDF_ZOOM, _PDF_ZOOM), alpha=False)
                return pix.tobytes("png")
        except (RuntimeError, ValueError) as e:
            raise EnrichmentFault(f"receipt PDF rasterization failed: {e}", step="convert") from e

    def normalize(self, url: str) -> bytes:
        return self.to_jpeg(self.download(url))


class ReceiptEnricher:
    """Fold structured receipt data into transactions before classification."""

    def __init__(
        self,
        *,
        classifier: Any,
        cache: ReceiptCache,
        normalizer: ImageNormalizer | None = None,
    ) -> None:
        self._classifier = classifier
        self._cache = cache
        self._normalizer = normalizer or ImageNormalizer()

    def _extract(self, url: str) -> ReceiptExtraction:
        try:
            jpeg = self._normalizer.normalize(url)
        except EnrichmentFault:
            raise
        except Exception as e:  # noqa: BLE001 - e.g. PIL.Image.DecompressionBombError
            raise EnrichmentFault(f"receipt conversion failed: {e}", step="convert") from e
        try:
            return self._classifier.extract_receipt(jpeg)
        except Exception as e:  # noqa: BLE001
            raise EnrichmentFault(f"receipt extraction failed: {e}", step="extract") from e

    def enrich(self, record: TransactionRecord) -> dict[str, ReceiptExtraction | None]:
        """Return ``{field_name: extraction | None}`` for each receipt URL field."""

        out: dict[str, ReceiptExtraction | None] = {}
        for name, value in record.extra_fields.items():
            if not is_receipt_url_field(name) or not is_url(value):
                continue
            key = receipt_cache_key(record, name)
            cached = self._cache.get(key)
            if cached is not None:
                _logger.debug("receipts:cache_hit key=%s", key)
                out[name] = cached
                continue
            try:
                extraction = self._extract(str(value).strip())
            except EnrichmentFault as e:
                _logger.warning(
                    "receipts:extract_failed key=%s step=%s error=%s", key, e.step, e
                )
                out[name] = None
                continue
            try:
                self._cache.put(key, extraction)
            except Exception as e:  # noqa: BLE001
                _logger.warning("receipts:cache_write_failed key=%s error=%s", key, e)
            _logger.info("receipts:extracted key=%s", key)
            out[name] = extraction
        return out


__all__ = [
    "is_receipt_url_field",
    "receipt_cache_key",
    "ReceiptCache",
    "ImageNormalizer",
    "ReceiptEnricher",
]
