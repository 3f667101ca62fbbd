"""Offline-first key-value sync engine.

Public API for keeping a local key-value store and a remote, user-scoped
key-value store converged under unreliable connectivity.

Architecture
------------
Writes always land in the local store first.  While the remote is
unreachable (or a push fails) they wait in a durable mutation queue.  A
reconciliation pass drains the queue, then compares both stores key by
key using ``last_modified`` as the only ordering signal.  Equal
timestamps with different content are surfaced as conflicts and left
untouched until a caller resolves them.

Modules:

- ``engine``      -- ``Synchronizer``: one reconciliation pass.
- ``service``     -- ``SyncService``: get/put/delete, sync trigger, resolve.
- ``local_store`` -- ``LocalStore``: JSON-file backed local replica.
- ``queue``       -- ``MutationQueue``: durable FIFO of pending writes.
- ``resolver``    -- ``ConflictResolver``, ``Merger``, ``ShallowMerger``.
- ``state``       -- ``JsonStateFile``: atomic JSON persistence.
- ``models``      -- ``Record``, ``QueuedMutation``, ``ConflictEntry``,
  ``SyncReport``, ``NotFound``: core data contracts.
- ``reporter``    -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from kvsync.config import load_config
    from kvsync.connectivity import ConnectivityMonitor
    from kvsync.sync import SyncService, format_sync_report

    config = load_config()
    monitor = ConnectivityMonitor(initial=True)
    service = SyncService.from_config(config, monitor)

    await service.put("copywriting_ai_business_context", {"brand": "Acme"})
    report = await service.sync()
    print(format_sync_report(report))

    for conflict in report.conflicts:
        await service.resolve(conflict.key, "local")
"""

from .engine import Synchronizer
from .local_store import LocalStore
from .models import (
    NOT_FOUND,
    ConflictEntry,
    NotFound,
    QueuedMutation,
    Record,
    ResolutionStrategy,
    SyncAction,
    SyncReport,
)
from .queue import MutationQueue
from .reporter import format_conflict, format_sync_report, report_to_json
from .resolver import ConflictResolver, Merger, ShallowMerger
from .service import SyncService

__all__ = [
    "NOT_FOUND",
    "ConflictEntry",
    "ConflictResolver",
    "LocalStore",
    "Merger",
    "MutationQueue",
    "NotFound",
    "QueuedMutation",
    "Record",
    "ResolutionStrategy",
    "ShallowMerger",
    "SyncAction",
    "SyncReport",
    "SyncService",
    "Synchronizer",
    "format_conflict",
    "format_sync_report",
    "report_to_json",
]
