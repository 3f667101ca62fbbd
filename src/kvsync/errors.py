"""Error taxonomy for the sync engine.

- ``NetworkError`` -- remote unreachable (offline or transport failure).
  Retryable: the mutation goes back into the queue.
- ``AuthError`` -- credentials rejected.  Fatal to the current sync pass,
  never retried automatically.
- ``RemoteError`` -- any other non-2xx response.  Retryable under a
  caller-supplied policy; the engine does not hardcode a retry count.
- ``ResolutionError`` -- a single ``resolve()`` call failed.
- ``LocalStoreError`` -- on-device storage failed for one get/put.

A missing remote key is *not* an error; see ``kvsync.sync.models.NotFound``.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync engine errors."""

    retryable: bool = False


class NetworkError(SyncError):
    """The remote store could not be reached."""

    retryable = True


class AuthError(SyncError):
    """The remote store rejected the configured credentials."""


class RemoteError(SyncError):
    """The remote store answered with an unexpected non-2xx status."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ResolutionError(SyncError):
    """A conflict could not be resolved; neither store was left diverged."""


class LocalStoreError(SyncError):
    """Reading or writing the on-device store failed."""
