"""Conflict resolution for keys reported by the synchronizer.

Provides:

- ``Merger``: Protocol for combining a local and a remote value.
- ``ShallowMerger``: Default merger -- remote fields overlaid by local
  fields.  Not aware of the payload's meaning; callers needing field-level
  merges supply their own ``Merger``.
- ``ConflictResolver``: Applies a ``ResolutionStrategy`` to one key and
  writes the result to both stores with a fresh timestamp, so the
  resolution is the newest write and a straggling sync pass cannot undo it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

from kvsync.core.async_utils import run_sync
from kvsync.errors import (
    AuthError,
    LocalStoreError,
    NetworkError,
    RemoteError,
    ResolutionError,
    SyncError,
)
from kvsync.sync.local_store import LocalStore
from kvsync.sync.models import (
    NotFound,
    QueuedMutation,
    Record,
    ResolutionStrategy,
    now_ms,
)
from kvsync.sync.queue import MutationQueue

if TYPE_CHECKING:
    from kvsync.core.client import RemoteStoreClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mergers
# ---------------------------------------------------------------------------


class Merger(Protocol):
    """Protocol that all merge strategies must satisfy."""

    def merge(self, key: str, local: Any, remote: Any) -> Any:
        """Combine the two sides of a conflict.

        Args:
            key: The conflicting key.
            local: Local value (``None`` if absent or deleted locally).
            remote: Remote value (``None`` if absent or deleted remotely).

        Returns:
            The merged value.

        Raises:
            ValueError: If the values cannot be merged.
        """
        ...  # pragma: no cover


class ShallowMerger:
    """Overlay local top-level fields onto the remote mapping.

    If only one side has a value, that side wins.  Non-mapping values
    cannot be merged.
    """

    def merge(self, key: str, local: Any, remote: Any) -> Any:
        if remote is None:
            return local
        if local is None:
            return remote
        if isinstance(local, Mapping) and isinstance(remote, Mapping):
            return {**remote, **local}
        raise ValueError(
            f"Cannot shallow-merge '{key}': both values must be objects "
            f"(got {type(local).__name__} and {type(remote).__name__})"
        )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ConflictResolver:
    """Resolve one conflicting key across both replicas.

    Args:
        local: The local store.
        remote: The remote store client.
        queue: Where a failed remote write goes so the queue can heal it.
        merger: Strategy used for ``ResolutionStrategy.MERGE``.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStoreClient,
        queue: MutationQueue,
        merger: Merger | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.local = local
        self.remote = remote
        self.queue = queue
        self.merger: Merger = merger or ShallowMerger()
        self._clock = clock

    async def resolve(
        self,
        key: str,
        strategy: ResolutionStrategy | str,
        merger: Merger | None = None,
    ) -> Record:
        """Pick or merge a value for *key* and write it to both stores.

        Args:
            key: The conflicting key.
            strategy: ``local``, ``remote`` or ``merge``.
            merger: Overrides the resolver's merger for this call.

        Returns:
            The record now held by the local store.

        Raises:
            ResolutionError: If reading, merging or writing failed.  Nothing
                is left diverged: either no store changed, or the remote
                write is queued for replay.
        """
        try:
            strategy = ResolutionStrategy(strategy)
        except ValueError:
            raise ResolutionError(
                f"Unknown resolution strategy: '{strategy}'. Valid strategies: "
                f"{sorted(s.value for s in ResolutionStrategy)}"
            ) from None

        try:
            local_record = await run_sync(self.local.get, key)
            remote_record = await run_sync(self.remote.get, key)
        except SyncError as exc:
            raise ResolutionError(
                f"Cannot resolve '{key}': failed to read both sides: {exc}"
            ) from exc

        if isinstance(remote_record, NotFound):
            remote_record = None

        resolved = self._pick(
            key, strategy, local_record, remote_record, merger or self.merger
        )

        try:
            await run_sync(self.local.write, resolved)
        except LocalStoreError as exc:
            raise ResolutionError(
                f"Cannot resolve '{key}': local write failed: {exc}"
            ) from exc

        try:
            await run_sync(
                self.remote.put,
                resolved.key,
                resolved.value,
                resolved.last_modified,
                resolved.deleted,
            )
        except (NetworkError, RemoteError) as exc:
            logger.warning(
                "Remote write for resolved '%s' failed (%s); queued for replay",
                key,
                exc,
            )
            try:
                await run_sync(
                    self.queue.enqueue, QueuedMutation.from_record(resolved)
                )
            except LocalStoreError as queue_exc:
                await self._rollback(key, local_record)
                raise ResolutionError(
                    f"Cannot resolve '{key}': remote write failed ({exc}) "
                    f"and queueing it failed: {queue_exc}"
                ) from queue_exc
        except AuthError as exc:
            await self._rollback(key, local_record)
            raise ResolutionError(
                f"Cannot resolve '{key}': remote rejected credentials: {exc}"
            ) from exc
        else:
            await run_sync(
                self.queue.drop_superseded, resolved.key, resolved.last_modified
            )

        logger.info("Resolved '%s' with strategy %s", key, strategy.value)
        return resolved

    def _pick(
        self,
        key: str,
        strategy: ResolutionStrategy,
        local_record: Record | None,
        remote_record: Record | None,
        merger: Merger,
    ) -> Record:
        """Build the resolved record with a fresh timestamp."""
        if strategy == ResolutionStrategy.LOCAL:
            chosen = local_record
        elif strategy == ResolutionStrategy.REMOTE:
            chosen = remote_record
        else:
            chosen = None

        if strategy != ResolutionStrategy.MERGE:
            if chosen is None:
                raise ResolutionError(
                    f"Cannot resolve '{key}' with '{strategy.value}': "
                    "no such record on that side"
                )
            return Record(
                key=key,
                value=chosen.value,
                last_modified=self._clock(),
                deleted=chosen.deleted,
            )

        if local_record is None and remote_record is None:
            raise ResolutionError(f"Cannot merge '{key}': key not found")

        # Nothing live on either side: stay deleted
        if all(r is None or r.deleted for r in (local_record, remote_record)):
            return Record(
                key=key, value=None, last_modified=self._clock(), deleted=True
            )
        local_value = _live_value(local_record)
        remote_value = _live_value(remote_record)
        try:
            value = merger.merge(key, local_value, remote_value)
        except Exception as exc:
            raise ResolutionError(f"Merge failed for '{key}': {exc}") from exc

        return Record(key=key, value=value, last_modified=self._clock())

    async def _rollback(self, key: str, previous: Record | None) -> None:
        """Restore the local record written before a fatal remote failure."""
        try:
            if previous is None:
                await run_sync(self.local.discard, key)
            else:
                await run_sync(self.local.write, previous)
        except LocalStoreError:
            logger.exception("Rollback of '%s' failed", key)
            raise


def _live_value(record: Record | None) -> Any:
    if record is None or record.deleted:
        return None
    return record.value
