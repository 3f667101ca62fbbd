"""Shared pytest fixtures for kvsync tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from kvsync.config import Config
from kvsync.connectivity import ConnectivityMonitor
from kvsync.errors import NetworkError
from kvsync.sync.local_store import LocalStore
from kvsync.sync.models import NOT_FOUND, Record
from kvsync.sync.queue import MutationQueue


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a reachable remote store",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a reachable remote store"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic epoch-ms clock; every call returns ``now``."""

    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1) -> int:
        self.now += ms
        return self.now


class FakeRemote:
    """In-memory stand-in for RemoteStoreClient.

    Honours the connectivity monitor the same way the real client does,
    and lets tests inject failures per key with ``fail_puts``.
    """

    def __init__(
        self,
        monitor: Optional[ConnectivityMonitor] = None,
        records: Optional[Dict[str, Record]] = None,
    ) -> None:
        self.monitor = monitor
        self.records: Dict[str, Record] = dict(records or {})
        self.put_calls: List[tuple] = []
        self.fail_puts: Dict[str, Exception] = {}
        self.fail_list: Optional[Exception] = None
        self.fail_get: Optional[Exception] = None
        self.reachable = True

    def _check_online(self) -> None:
        if self.monitor is not None and not self.monitor.online:
            raise NetworkError("offline")

    def seed(self, key: str, value: Any, ts: int, deleted: bool = False) -> None:
        self.records[key] = Record(
            key=key, value=value, last_modified=ts, deleted=deleted
        )

    def get(self, key: str):
        self._check_online()
        if self.fail_get is not None:
            raise self.fail_get
        return self.records.get(key, NOT_FOUND)

    def put(
        self, key: str, value: Any, last_modified: int, deleted: bool = False
    ) -> dict:
        self._check_online()
        self.put_calls.append((key, value, last_modified, deleted))
        if key in self.fail_puts:
            raise self.fail_puts[key]
        self.records[key] = Record(
            key=key, value=value, last_modified=last_modified, deleted=deleted
        )
        return {"success": True}

    def list_all(self) -> Dict[str, Record]:
        self._check_online()
        if self.fail_list is not None:
            raise self.fail_list
        return dict(self.records)

    def validate_connection(self) -> bool:
        return self.reachable


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config instance for testing."""
    return Config(
        api_url="https://api.example.com",
        api_key="test-key",
        user_id="user-1",
        data_dir=str(tmp_path / "data"),
        namespace="",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monitor():
    return ConnectivityMonitor(initial=True)


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def local_store(data_dir, clock):
    return LocalStore(data_dir, clock=clock)


@pytest.fixture
def queue(data_dir):
    return MutationQueue(data_dir)


@pytest.fixture
def fake_remote(monitor):
    return FakeRemote(monitor=monitor)


@pytest.fixture
def mock_remote_client(mock_config):
    """MagicMock with the RemoteStoreClient interface."""
    from kvsync.core.client import RemoteStoreClient

    client = MagicMock(spec=RemoteStoreClient)
    client.config = mock_config
    return client
