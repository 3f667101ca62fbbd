"""Connectivity Monitor: observable online/offline state.

The monitor is created once per process and injected into the remote
client, the synchronizer and the service -- nothing reads connectivity
from a global.  Listeners subscribed with ``subscribe()`` are called once
per offline->online transition; going offline only flips the flag.

``watch()`` is the polling loop that feeds the monitor from a blocking
probe (typically ``RemoteStoreClient.validate_connection``).
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

from kvsync.core.async_utils import run_sync

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ConnectivityMonitor:
    """Track whether the remote store is reachable.

    Args:
        initial: The platform's current connectivity signal.
    """

    def __init__(self, initial: bool = True) -> None:
        self._online = initial
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    @property
    def online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Update the connectivity flag.

        An offline->online transition notifies every listener.  Listener
        errors are logged and never reach the caller.
        """
        with self._lock:
            previous = self._online
            self._online = online
            listeners = list(self._listeners)

        if previous == online:
            return

        logger.info("Connectivity changed: %s", "online" if online else "offline")
        if not online:
            return

        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for online transitions.

        Returns:
            A callable that unsubscribes the listener.
        """
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Remove *listener*.  No-op if it is not subscribed."""
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    async def watch(
        self,
        probe: Callable[[], bool],
        interval: float,
        stop: asyncio.Event,
    ) -> None:
        """Poll *probe* every *interval* seconds until *stop* is set.

        The probe runs in a worker thread.  A probe that raises counts as
        offline.
        """
        while not stop.is_set():
            try:
                reachable = bool(await run_sync(probe))
            except Exception as exc:
                logger.debug("Connectivity probe failed: %s", exc)
                reachable = False
            self.set_online(reachable)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
