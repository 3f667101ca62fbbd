"""Synchronizer: the reconciliation pass between the local and remote stores.

A pass:

1. Refuses immediately when offline (no queue access).
2. Drains the mutation queue and replays it in FIFO order.  A mutation
   that either store has already moved past (a newer local write, or a
   remote record at least as new) is acknowledged without a push, so an
   old offline write never overwrites a newer one.  The first failed push
   stops the phase; that item and everything after it go back to the
   queue in their original order.
3. Lists both stores concurrently.
4. Compares each key by ``last_modified``: the newer side wins, equal
   timestamps with equal content are already converged, equal timestamps
   with different content become a ``ConflictEntry`` and neither side is
   touched.
5. Builds and returns a ``SyncReport``.

Failures never raise out of ``run()``; they are reported with
``success=False``.  A single key failing does not abort the pass, except
for ``AuthError`` which stops it.  At most one pass runs at a time; a
trigger that arrives during a pass waits for it to finish.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from kvsync.core.async_utils import gather, run_sync
from kvsync.errors import (
    AuthError,
    LocalStoreError,
    NetworkError,
    RemoteError,
    SyncError,
)
from kvsync.sync.local_store import LocalStore
from kvsync.sync.models import (
    ConflictEntry,
    NotFound,
    QueuedMutation,
    Record,
    SyncAction,
    SyncReport,
)
from kvsync.sync.queue import MutationQueue

if TYPE_CHECKING:
    from kvsync.connectivity import ConnectivityMonitor
    from kvsync.core.client import RemoteStoreClient

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


@dataclass
class _PassTally:
    """Mutable counters for one pass, frozen into a SyncReport at the end."""

    started_at: str
    replayed: int = 0
    pushed: int = 0
    pulled: int = 0
    conflicts: list[ConflictEntry] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    def fail(self, key: str, reason: str) -> None:
        self.failures.append((key, reason))

    def report(self, error_message: str | None = None) -> SyncReport:
        if error_message is None and self.failures:
            detail = "; ".join(reason for _, reason in self.failures[:3])
            error_message = f"{len(self.failures)} item(s) failed: {detail}"
        return SyncReport(
            success=error_message is None,
            items_processed=self.replayed + self.pushed + self.pulled,
            conflicts=self.conflicts,
            error_message=error_message,
            replayed=self.replayed,
            pushed=self.pushed,
            pulled=self.pulled,
            failed_keys=[key for key, _ in self.failures],
            started_at=self.started_at,
            completed_at=_utcnow(),
        )


class Synchronizer:
    """Run reconciliation passes between two replicas.

    Args:
        local: The local store.
        remote: The remote store client.
        queue: The mutation queue drained at the start of each pass.
        monitor: Connectivity state; an offline monitor refuses passes.
        namespace: Only keys with this prefix are reconciled.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStoreClient,
        queue: MutationQueue,
        monitor: ConnectivityMonitor,
        namespace: str = "",
    ) -> None:
        self.local = local
        self.remote = remote
        self.queue = queue
        self.monitor = monitor
        self.namespace = namespace
        self._pass_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        """True while a pass holds the pass lock."""
        return self._pass_lock.locked()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(self, cancel: asyncio.Event | None = None) -> SyncReport:
        """Drain the queue and reconcile both stores.

        Args:
            cancel: Optional token; when set, the pass stops at the next
                key boundary and reports ``error_message="cancelled"``.

        Returns:
            A ``SyncReport``.  Never raises for store or network failures.
        """
        if not self.monitor.online:
            now = _utcnow()
            return SyncReport(
                success=False,
                error_message="offline",
                started_at=now,
                completed_at=now,
            )

        async with self._pass_lock:
            tally = _PassTally(started_at=_utcnow())
            if not self.monitor.online:
                return tally.report("offline")

            try:
                await self._replay_queue(tally, cancel)
                if _cancelled(cancel):
                    return tally.report("cancelled")

                remote_records, local_records = await gather(
                    [
                        run_sync(self.remote.list_all),
                        run_sync(self.local.list_all, self.namespace),
                    ]
                )
                remote_records = {
                    k: r
                    for k, r in remote_records.items()
                    if k.startswith(self.namespace)
                }

                for key in sorted(set(local_records) | set(remote_records)):
                    if _cancelled(cancel):
                        return tally.report("cancelled")
                    await self._reconcile_key(
                        key,
                        local_records.get(key),
                        remote_records.get(key),
                        tally,
                    )
            except AuthError as exc:
                logger.error("Sync aborted, credentials rejected: %s", exc)
                return tally.report(f"authentication failed: {exc}")
            except SyncError as exc:
                logger.error("Sync failed: %s", exc)
                return tally.report(f"sync failed: {exc}")

            report = tally.report()
            logger.info(
                "Sync pass finished: %d processed, %d conflicts, %d failed",
                report.items_processed,
                len(report.conflicts),
                len(report.failed_keys),
            )
            return report

    # ------------------------------------------------------------------
    # Queue replay
    # ------------------------------------------------------------------

    async def _replay_queue(
        self, tally: _PassTally, cancel: asyncio.Event | None
    ) -> None:
        """Push queued mutations in order, stopping at the first failure."""
        remaining = await run_sync(self.queue.drain)
        if remaining:
            logger.info("Replaying %d queued mutation(s)", len(remaining))
        try:
            while remaining and not _cancelled(cancel):
                mutation = remaining[0]
                try:
                    if await self._superseded(mutation):
                        remaining.pop(0)
                        await run_sync(self.queue.ack, mutation)
                        continue
                    await self._push(mutation)
                except (NetworkError, RemoteError) as exc:
                    logger.warning(
                        "Replay of %s failed, %d mutation(s) left queued: %s",
                        mutation.key,
                        len(remaining),
                        exc,
                    )
                    tally.fail(mutation.key, f"replay of '{mutation.key}': {exc}")
                    return
                remaining.pop(0)
                await run_sync(self.queue.ack, mutation)
                tally.replayed += 1
        finally:
            # Also runs on CancelledError and AuthError.
            if remaining:
                await run_sync(self.queue.requeue, remaining)

    # ------------------------------------------------------------------
    # Per-key reconciliation
    # ------------------------------------------------------------------

    async def _reconcile_key(
        self,
        key: str,
        local: Record | None,
        remote: Record | None,
        tally: _PassTally,
    ) -> None:
        action = decide(local, remote)

        if action == SyncAction.SKIP:
            return

        if action == SyncAction.CONFLICT:
            logger.warning("Write-write conflict on %s", key)
            tally.conflicts.append(
                ConflictEntry(
                    key=key,
                    local_value=local.value,
                    remote_value=remote.value,
                )
            )
            return

        if action == SyncAction.PUSH:
            mutation = QueuedMutation.from_record(local)
            try:
                await self._push(mutation)
            except (NetworkError, RemoteError) as exc:
                logger.warning("Push of %s failed, queued: %s", key, exc)
                await run_sync(self.queue.enqueue, mutation)
                tally.fail(key, f"push of '{key}': {exc}")
                return
            tally.pushed += 1
            return

        try:
            await run_sync(self.local.write, remote)
        except LocalStoreError as exc:
            logger.error("Pull of %s failed: %s", key, exc)
            tally.fail(key, f"pull of '{key}': {exc}")
            return
        tally.pulled += 1

    async def _superseded(self, mutation: QueuedMutation) -> bool:
        """True when a queued write is older than what either store holds.

        Reconciliation then carries the newer value in whichever direction
        it needs to go.  An equal remote timestamp is also skipped: it is
        either this same write already delivered, or a conflict that
        reconciliation reports.
        """
        local = await run_sync(self.local.get, mutation.key)
        if local is not None and local.last_modified > mutation.last_modified:
            logger.debug("Queued %s superseded locally", mutation.key)
            return True
        remote = await run_sync(self.remote.get, mutation.key)
        if isinstance(remote, NotFound):
            return False
        if remote.last_modified >= mutation.last_modified:
            logger.info(
                "Queued %s (ts=%d) skipped, remote holds ts=%d",
                mutation.key,
                mutation.last_modified,
                remote.last_modified,
            )
            return True
        return False

    async def _push(self, mutation: QueuedMutation) -> None:
        await run_sync(
            self.remote.put,
            mutation.key,
            mutation.value,
            mutation.last_modified,
            mutation.deleted,
        )


def decide(local: Record | None, remote: Record | None) -> SyncAction:
    """Decide what reconciliation does for one key.

    ``last_modified`` is the only ordering authority.  Equal timestamps
    with equal content are treated as converged so repeated passes do not
    report false conflicts.
    """
    if local is None and remote is None:
        return SyncAction.SKIP
    if remote is None:
        return SyncAction.PUSH
    if local is None:
        return SyncAction.PULL
    if local.last_modified > remote.last_modified:
        return SyncAction.PUSH
    if remote.last_modified > local.last_modified:
        return SyncAction.PULL
    if local.same_content(remote):
        return SyncAction.SKIP
    return SyncAction.CONFLICT
