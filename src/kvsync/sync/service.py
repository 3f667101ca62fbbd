"""Application-facing facade over the sync engine.

``SyncService`` is the only object collaborators (UI views, MCP tools)
talk to.  It offers key-value ``get``/``put``/``delete``, a ``sync()``
trigger, conflict ``resolve()`` and status queries, and wires the
connectivity monitor so that coming back online schedules a pass.

Writes always land locally first.  If the monitor reports online the
remote write is attempted immediately; otherwise, or if it fails, the
mutation is queued for the next pass.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kvsync.core.async_utils import run_sync
from kvsync.errors import AuthError, SyncError
from kvsync.sync.engine import Synchronizer
from kvsync.sync.local_store import LocalStore
from kvsync.sync.models import (
    NotFound,
    QueuedMutation,
    Record,
    ResolutionStrategy,
    SyncReport,
)
from kvsync.sync.queue import MutationQueue
from kvsync.sync.resolver import ConflictResolver, Merger

if TYPE_CHECKING:
    from kvsync.config import Config
    from kvsync.connectivity import ConnectivityMonitor
    from kvsync.core.client import RemoteStoreClient

logger = logging.getLogger(__name__)


class SyncService:
    """Key-value access with offline queueing and background sync.

    Args:
        local: The local store.
        remote: The remote store client.
        queue: The durable mutation queue.
        monitor: Shared connectivity state.
        namespace: Prefix of engine-managed keys.
        merger: Default merger for ``resolve(..., "merge")``.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStoreClient,
        queue: MutationQueue,
        monitor: ConnectivityMonitor,
        namespace: str = "",
        merger: Merger | None = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.queue = queue
        self.monitor = monitor
        self.namespace = namespace
        self.synchronizer = Synchronizer(
            local, remote, queue, monitor, namespace=namespace
        )
        self.resolver = ConflictResolver(local, remote, queue, merger=merger)
        self.last_report: SyncReport | None = None

        self._cancel = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe = monitor.subscribe(self._on_online)

    @classmethod
    def from_config(
        cls, config: Config, monitor: ConnectivityMonitor
    ) -> SyncService:
        """Build the service and its stores from a validated ``Config``."""
        from kvsync.core.client import RemoteStoreClient

        data_dir = Path(config.data_dir).expanduser()
        return cls(
            local=LocalStore(data_dir),
            remote=RemoteStoreClient(config, monitor),
            queue=MutationQueue(data_dir),
            monitor=monitor,
            namespace=config.namespace,
        )

    # ------------------------------------------------------------------
    # Key-value interface
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any:
        """Return the local value for *key*, or ``None`` if absent or deleted."""
        record = await run_sync(self.local.get, key)
        if record is None or record.deleted:
            return None
        return record.value

    async def put(self, key: str, value: Any) -> bool:
        """Store *value* locally and try to push it.

        Returns:
            True if the remote store confirmed the write, False if the
            mutation was queued.
        """
        record = await run_sync(self.local.put, key, value)
        return await self._propagate(record)

    async def delete(self, key: str) -> bool:
        """Tombstone *key* locally and try to push the tombstone.

        Returns:
            True if the remote store confirmed the write, False if queued.
        """
        record = await run_sync(self.local.delete, key)
        return await self._propagate(record)

    async def fetch_remote(self, key: str) -> Any:
        """Read *key* straight from the remote store.

        Returns:
            The remote value, or ``None`` when offline, absent, deleted or
            the request failed.
        """
        if not self.monitor.online:
            return None
        try:
            record = await run_sync(self.remote.get, key)
        except SyncError as exc:
            logger.warning("Remote read of %s failed: %s", key, exc)
            return None
        if isinstance(record, NotFound) or record.deleted:
            return None
        return record.value

    # ------------------------------------------------------------------
    # Sync and resolution
    # ------------------------------------------------------------------

    async def sync(self) -> SyncReport:
        """Run one reconciliation pass (waits behind a running one)."""
        report = await self.synchronizer.run(self._cancel)
        self.last_report = report
        return report

    async def resolve(
        self,
        key: str,
        strategy: ResolutionStrategy | str,
        merger: Merger | None = None,
    ) -> Record:
        """Resolve a conflicting key; see ``ConflictResolver.resolve``."""
        return await self.resolver.resolve(key, strategy, merger=merger)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def online(self) -> bool:
        return self.monitor.online

    def queue_status(self) -> dict[str, Any]:
        """Return ``{"count": N, "items": [...]}`` for pending mutations."""
        return self.queue.status()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop reacting to connectivity and let in-flight passes wind down.

        Running passes stop at their next key boundary; anything drained
        but not confirmed goes back to the queue.
        """
        self._unsubscribe()
        self._cancel.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _propagate(self, record: Record) -> bool:
        mutation = QueuedMutation.from_record(record)
        if not self.monitor.online:
            await run_sync(self.queue.enqueue, mutation)
            logger.debug("Offline: queued %s", record.key)
            return False

        try:
            await run_sync(
                self.remote.put,
                record.key,
                record.value,
                record.last_modified,
                record.deleted,
            )
        except AuthError as exc:
            logger.error("Push of %s rejected: %s", record.key, exc)
            await run_sync(self.queue.enqueue, mutation)
            return False
        except SyncError as exc:
            logger.warning("Push of %s failed, queued: %s", record.key, exc)
            await run_sync(self.queue.enqueue, mutation)
            return False
        await run_sync(
            self.queue.drop_superseded, record.key, record.last_modified
        )
        return True

    def _on_online(self) -> None:
        """Schedule a pass on the running loop when connectivity returns."""
        if self._cancel.is_set():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Back online outside an event loop; sync not scheduled")
            return
        task = loop.create_task(self.sync())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
