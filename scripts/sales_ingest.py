"""Fetch sales-report payloads and keep the last normalized rows as a snapshot."""

from __future__ import annotations

import json
import logging
import zipfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

import pandas as pd
import requests
from openpyxl.utils.exceptions import InvalidFileException

from normalize_sales_rows import NORMALIZED_COLUMNS, frame_from_records, normalize_rows


logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "cached_report_rows"
DEFAULT_TIMEOUT = 30


class IngestionError(Exception):
    """Raised when a report payload cannot be fetched or has no rows."""


@dataclass
class LoadResult:
    frame: pd.DataFrame
    error: str | None = None
    from_snapshot: bool = False


def empty_frame() -> pd.DataFrame:
    return frame_from_records([])


def extract_raw_rows(payload: object) -> list:
    """Accept either a bare list of rows or an object carrying a ``rows`` list."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, Mapping):
        rows = payload.get("rows") or []
    else:
        rows = []

    if not isinstance(rows, list) or not rows:
        raise IngestionError("No rows in report payload")
    return rows


def fetch_report_payload(
    url: str, http_client=None, timeout: float = DEFAULT_TIMEOUT
) -> object:
    if not url:
        raise IngestionError("Webhook URL is not configured")

    http_client = http_client or requests
    logger.info("Fetching sales report from %s", url)

    try:
        response = http_client.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise IngestionError(f"Webhook request failed: {e}") from e

    if not response.ok:
        raise IngestionError(f"Webhook returned HTTP {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        raise IngestionError("Webhook returned invalid JSON") from e


def _records_without_nan(frame: pd.DataFrame) -> list[dict]:
    out = frame.astype(object).where(frame.notna(), None)
    return out.to_dict(orient="records")


def read_payload_file(path: Path) -> object:
    if not path.exists():
        raise FileNotFoundError(f"Input not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        try:
            return json.loads(path.read_text(encoding="utf-8-sig"))
        except ValueError as e:
            raise IngestionError(f"Invalid JSON in {path.name}") from e
    if suffix in {".xlsx", ".xls"}:
        return _records_without_nan(pd.read_excel(path, sheet_name=0, dtype=object))
    if suffix == ".csv":
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        return frame.to_dict(orient="records")

    raise IngestionError(f"Unsupported payload file: {path.name}")


FILE_READ_ERRORS = (OSError, ValueError, zipfile.BadZipFile, InvalidFileException)


def fetch_payload_file(path: Path) -> object:
    """Read a payload file, reporting any read or parse failure as IngestionError."""
    try:
        return read_payload_file(path)
    except FILE_READ_ERRORS as e:
        raise IngestionError(f"Cannot read {path.name}: {e}") from e


class JsonSnapshotStore:
    """Key-value JSON file holding the most recent normalized rows."""

    def __init__(self, path: Path, key: str = SNAPSHOT_KEY):
        self.path = Path(path)
        self.key = key

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            state = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Ignoring unreadable snapshot file %s", self.path)
            return {}
        return state if isinstance(state, dict) else {}

    def _write(self, state: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(state, ensure_ascii=False, indent=2), encoding="utf-8"
        )

    def load(self) -> pd.DataFrame | None:
        records = self._read().get(self.key)
        if not records:
            return None
        return frame_from_records(records)

    def save(self, frame: pd.DataFrame) -> None:
        state = self._read()
        state[self.key] = frame[NORMALIZED_COLUMNS].to_dict(orient="records")
        self._write(state)
        logger.info("Saved %d rows to snapshot %s", len(frame), self.path)

    def clear(self) -> None:
        state = self._read()
        if self.key not in state:
            return
        del state[self.key]
        if state:
            self._write(state)
        else:
            self.path.unlink()


def load_dataset(fetch: Callable[[], object], store: JsonSnapshotStore) -> LoadResult:
    """Fetch, normalize and snapshot a fresh dataset.

    Any ingestion failure falls back to the stored snapshot, or to an empty
    dataset when there is none; the failure message travels in ``error``.
    """
    try:
        rows = extract_raw_rows(fetch())
    except IngestionError as e:
        cached = store.load()
        if cached is None:
            logger.warning("Ingestion failed and no snapshot is available: %s", e)
            return LoadResult(frame=empty_frame(), error=str(e))
        logger.warning(
            "Ingestion failed, using snapshot with %d rows: %s", len(cached), e
        )
        return LoadResult(frame=cached, error=str(e), from_snapshot=True)

    frame = normalize_rows(rows)
    store.save(frame)
    return LoadResult(frame=frame)


def initial_dataset(
    fetch: Callable[[], object], store: JsonSnapshotStore
) -> LoadResult:
    cached = store.load()
    if cached is not None:
        logger.info("Using snapshot with %d rows", len(cached))
        return LoadResult(frame=cached, from_snapshot=True)
    return load_dataset(fetch, store)
