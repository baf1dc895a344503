"""Shared fixtures for edusync tests."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from edusync.client.connectivity import ConnectivityMonitor
from edusync.client.outbox import Outbox
from edusync.client.store import LocalStore
from edusync.core.types import ConnectivityState

from tests.fakes import FakeRemote


@pytest.fixture
def store(tmp_path: Path) -> Iterator[LocalStore]:
    """Open a LocalStore in a temporary directory."""
    s = LocalStore(tmp_path / "test.db").open()
    yield s
    s.close()


@pytest.fixture
def outbox(store: LocalStore) -> Outbox:
    """Create an Outbox with unbounded retries."""
    return Outbox(store)


@pytest.fixture
def remote() -> FakeRemote:
    """Create a scriptable fake backend."""
    return FakeRemote()


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    """Create a monitor that starts online."""
    return ConnectivityMonitor(initial_state=ConnectivityState.ONLINE)
