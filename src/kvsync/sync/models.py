"""Pydantic models for the key-value sync engine.

Defines the core data contracts used across all sync modules:

- ``Record``: A value plus its modification timestamp.
- ``QueuedMutation``: A pending remote write.
- ``ConflictEntry``: A write-write conflict surfaced by reconciliation.
- ``SyncReport``: Aggregate results for a full sync pass.
- ``NotFound``: Typed "key absent remotely" result.

Timestamps are integer milliseconds since the Unix epoch.  All models are
frozen (immutable) for safety.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class SyncAction(str, Enum):
    """What reconciliation decided for one key."""

    SKIP = "skip"
    PUSH = "push"
    PULL = "pull"
    CONFLICT = "conflict"


class ResolutionStrategy(str, Enum):
    """How a conflicting key should be resolved."""

    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"


class NotFound:
    """Result of a remote lookup for a key that has never existed remotely.

    Distinct from an error: the request succeeded and the key is absent.
    Use the module-level ``NOT_FOUND`` instance.
    """

    _instance: NotFound | None = None

    def __new__(cls) -> NotFound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = NotFound()


class Record(BaseModel):
    """A stored value in either replica.

    Attributes:
        key: Namespaced key, unique within the user's data set.
        value: Opaque JSON-serialisable payload (``None`` for tombstones).
        last_modified: Epoch ms of the write that produced this value.
        deleted: True if this record is a deletion tombstone.
    """

    key: str
    value: Any = None
    last_modified: int
    deleted: bool = False

    model_config = {"frozen": True}

    def same_content(self, other: Record) -> bool:
        """Return True if *other* carries the same payload and tombstone flag."""
        return self.deleted == other.deleted and self.value == other.value


class QueuedMutation(BaseModel):
    """A write waiting to be confirmed by the remote store.

    Attributes:
        id: Unique identifier used to acknowledge the push.
        action: Always ``"save"``; deletions travel as tombstone saves.
        key: Key being written.
        value: Value to push.
        last_modified: Timestamp of the local write being propagated.
        enqueued_at: Epoch ms when the mutation entered the queue.
        deleted: True if the mutation propagates a tombstone.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    action: str = "save"
    key: str
    value: Any = None
    last_modified: int
    enqueued_at: int = Field(default_factory=now_ms)
    deleted: bool = False

    model_config = {"frozen": True}

    @classmethod
    def from_record(cls, record: Record) -> QueuedMutation:
        """Build the mutation that pushes *record* to the remote store."""
        return cls(
            key=record.key,
            value=record.value,
            last_modified=record.last_modified,
            deleted=record.deleted,
        )


class ConflictEntry(BaseModel):
    """Equal timestamps, different content: needs explicit resolution."""

    key: str
    local_value: Any = None
    remote_value: Any = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one sync pass.

    Attributes:
        success: False if the pass was refused, aborted or had failures.
        items_processed: ``replayed + pushed + pulled``.
        conflicts: Write-write conflicts, in key order.
        error_message: Why the pass did not fully succeed.
        replayed: Queued mutations pushed during the drain phase.
        pushed: Keys pushed local -> remote during reconciliation.
        pulled: Keys pulled remote -> local during reconciliation.
        failed_keys: Keys whose push or pull failed in this pass.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass finished.
    """

    success: bool
    items_processed: int = 0
    conflicts: list[ConflictEntry] = []
    error_message: str | None = None
    replayed: int = 0
    pushed: int = 0
    pulled: int = 0
    failed_keys: list[str] = []
    started_at: str | None = None
    completed_at: str | None = None

    model_config = {"frozen": True}

    def summary(self) -> str:
        """Format a human-readable summary of the sync pass.

        Returns:
            Multi-line summary string with counts.
        """
        status = "ok" if self.success else "failed"
        lines = [
            f"Sync {status}: processed {self.items_processed} items",
            f"  Replayed:  {self.replayed}",
            f"  Pushed:    {self.pushed}",
            f"  Pulled:    {self.pulled}",
            f"  Conflicts: {len(self.conflicts)}",
            f"  Failed:    {len(self.failed_keys)}",
        ]
        if self.error_message:
            lines.append(f"  Error:     {self.error_message}")
        return "\n".join(lines)
