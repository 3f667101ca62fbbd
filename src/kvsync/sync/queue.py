"""Mutation Queue: durable FIFO of remote writes awaiting confirmation.

The queue document (``<data_dir>/queue.json``) has two lists::

    {"version": 1, "pending": [...], "inflight": [...]}

``drain()`` moves every pending item to ``inflight`` and returns them.  An
in-flight item disappears only when ``ack()`` confirms its push, or goes
back to ``pending`` via ``requeue()``.  If the process dies mid-drain the
in-flight list is still on disk, and the next ``MutationQueue`` restores it
ahead of the pending items: delivery is at-least-once, never lossy.

Enqueueing a key drops any older *pending* mutation for the same key, so
replay always carries the final value per key.  All state changes are
serialised by a ``threading.Lock``, which makes ``drain()`` atomic with
respect to ``enqueue()`` calls from application code.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from kvsync.errors import LocalStoreError
from kvsync.sync.models import QueuedMutation
from kvsync.sync.state import JsonStateFile

logger = logging.getLogger(__name__)


class MutationQueue:
    """Durable, ordered queue of pending remote writes.

    Args:
        data_dir: Directory holding ``queue.json``.
    """

    FILENAME = "queue.json"

    def __init__(self, data_dir: Path) -> None:
        self._file = JsonStateFile(Path(data_dir) / self.FILENAME)
        self._lock = threading.Lock()

        try:
            doc = self._file.load({"version": 1, "pending": [], "inflight": []})
        except (OSError, ValueError) as exc:
            raise LocalStoreError(
                f"Failed to read mutation queue {self._file.path}: {exc}"
            ) from exc

        recovered = [QueuedMutation(**m) for m in doc.get("inflight", [])]
        self._pending: list[QueuedMutation] = recovered + [
            QueuedMutation(**m) for m in doc.get("pending", [])
        ]
        self._inflight: dict[str, QueuedMutation] = {}
        if recovered:
            logger.warning(
                "Recovered %d unconfirmed mutation(s) from an interrupted drain",
                len(recovered),
            )
            self._persist()

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def enqueue(self, mutation: QueuedMutation) -> None:
        """Append *mutation*, superseding any older pending write for its key."""
        with self._lock:
            self._pending = [
                m for m in self._pending if m.key != mutation.key
            ]
            self._pending.append(mutation)
            self._persist()
        logger.debug(
            "Queued %s (pending=%d)", mutation.key, len(self._pending)
        )

    def drain(self) -> list[QueuedMutation]:
        """Atomically take every pending mutation for replay.

        Returns:
            The snapshot in FIFO order.  Each item stays in flight until
            ``ack()`` or ``requeue()`` is called for it.
        """
        with self._lock:
            snapshot = self._pending
            self._pending = []
            for mutation in snapshot:
                self._inflight[mutation.id] = mutation
            self._persist()
        return list(snapshot)

    def ack(self, mutation: QueuedMutation) -> None:
        """Confirm that *mutation* reached the remote store."""
        with self._lock:
            if self._inflight.pop(mutation.id, None) is not None:
                self._persist()

    def requeue(self, mutations: Iterable[QueuedMutation]) -> None:
        """Return unconfirmed mutations to the head of the queue.

        Their relative order is kept.  A mutation is dropped instead when a
        newer write for the same key was enqueued while it was in flight.
        """
        with self._lock:
            newer_keys = {m.key for m in self._pending}
            restored = []
            for mutation in mutations:
                self._inflight.pop(mutation.id, None)
                if mutation.key in newer_keys:
                    continue
                restored.append(mutation)
            self._pending = restored + self._pending
            self._persist()

    def drop_superseded(self, key: str, last_modified: int) -> int:
        """Forget pending writes for *key* no newer than a confirmed write.

        Called after a direct push succeeds, so replay cannot carry an
        older value back over it.

        Returns:
            The number of mutations dropped.
        """
        with self._lock:
            kept = [
                m
                for m in self._pending
                if m.key != key or m.last_modified > last_modified
            ]
            dropped = len(self._pending) - len(kept)
            if dropped:
                self._pending = kept
                self._persist()
        if dropped:
            logger.debug("Dropped %d superseded mutation(s) for %s", dropped, key)
        return dropped

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def pending(self) -> list[QueuedMutation]:
        """Return a copy of the pending mutations in FIFO order."""
        with self._lock:
            return list(self._pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._inflight)

    def status(self) -> dict[str, Any]:
        """Return ``{"count": N, "items": [...]}`` for display."""
        items = self.pending()
        return {
            "count": len(items),
            "items": [m.model_dump() for m in items],
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        """Write the queue to disk.  Caller must hold ``self._lock``."""
        doc = {
            "version": 1,
            "pending": [m.model_dump() for m in self._pending],
            "inflight": [m.model_dump() for m in self._inflight.values()],
        }
        try:
            self._file.save(doc)
        except (OSError, TypeError, ValueError) as exc:
            raise LocalStoreError(
                f"Failed to persist mutation queue: {exc}"
            ) from exc
