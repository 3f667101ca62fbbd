"""Local Store Adapter: durable on-device key-value persistence.

Records are kept in one JSON document (``<data_dir>/store.json``)::

    {
      "version": 1,
      "records": {
        "copywriting_ai_prompt_templates": {
          "value": [...], "last_modified": 1700000000000, "deleted": false
        }
      }
    }

``put()`` stamps the record with the *write* time, never the query time,
so timestamp comparison during reconciliation is meaningful.  ``write()``
stores a record verbatim and is what the synchronizer uses when pulling,
so a pulled record keeps the remote timestamp.

Every failure of the underlying file is raised as ``LocalStoreError`` and
affects only the call that hit it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from kvsync.errors import LocalStoreError
from kvsync.sync.models import Record, now_ms
from kvsync.sync.state import JsonStateFile

logger = logging.getLogger(__name__)

_EMPTY_STORE = {"version": 1, "records": {}}


class LocalStore:
    """JSON-file backed key-value store.

    Args:
        data_dir: Directory holding ``store.json``.
        clock: Returns the current time in epoch milliseconds.  Injected
            by tests; defaults to the wall clock.
    """

    FILENAME = "store.json"

    def __init__(
        self,
        data_dir: Path,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._file = JsonStateFile(Path(data_dir) / self.FILENAME)
        self._clock = clock
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> Record | None:
        """Return the record for *key*, or ``None`` if never written."""
        with self._lock:
            records = self._load()["records"]
        raw = records.get(key)
        if raw is None:
            return None
        return _to_record(key, raw)

    def list_all(self, prefix: str = "") -> dict[str, Record]:
        """Return every record whose key starts with *prefix*."""
        with self._lock:
            records = self._load()["records"]
        return {
            key: _to_record(key, raw)
            for key, raw in records.items()
            if key.startswith(prefix)
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, key: str, value: Any) -> Record:
        """Store *value* under *key*, timestamped with the current time."""
        record = Record(key=key, value=value, last_modified=self._clock())
        self.write(record)
        return record

    def delete(self, key: str) -> Record:
        """Replace *key* with a tombstone so the deletion can propagate."""
        record = Record(
            key=key,
            value=None,
            last_modified=self._clock(),
            deleted=True,
        )
        self.write(record)
        return record

    def write(self, record: Record) -> None:
        """Store *record* as-is, preserving its timestamp."""
        with self._lock:
            doc = self._load()
            doc.setdefault("records", {})[record.key] = {
                "value": record.value,
                "last_modified": record.last_modified,
                "deleted": record.deleted,
            }
            try:
                self._file.save(doc)
            except (OSError, TypeError, ValueError) as exc:
                raise LocalStoreError(
                    f"Failed to write local record '{record.key}': {exc}"
                ) from exc
        logger.debug(
            "Local write %s (ts=%d, deleted=%s)",
            record.key,
            record.last_modified,
            record.deleted,
        )

    def discard(self, key: str) -> None:
        """Forget *key* entirely, without leaving a tombstone.

        Only for undoing a write this process just made; user-facing
        deletions go through ``delete()`` so they can propagate.
        """
        with self._lock:
            doc = self._load()
            if doc.get("records", {}).pop(key, None) is None:
                return
            try:
                self._file.save(doc)
            except (OSError, ValueError) as exc:
                raise LocalStoreError(
                    f"Failed to discard local record '{key}': {exc}"
                ) from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self) -> dict:
        try:
            return self._file.load(_EMPTY_STORE)
        except (OSError, ValueError) as exc:
            raise LocalStoreError(
                f"Failed to read local store {self._file.path}: {exc}"
            ) from exc


def _to_record(key: str, raw: dict) -> Record:
    try:
        last_modified = int(raw.get("last_modified", 0))
    except (AttributeError, TypeError, ValueError) as exc:
        raise LocalStoreError(
            f"Malformed local record '{key}': {exc}"
        ) from exc
    return Record(
        key=key,
        value=raw.get("value"),
        last_modified=last_modified,
        deleted=bool(raw.get("deleted", False)),
    )
