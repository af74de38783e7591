"""Pytest configuration for hometrack tests.

Provides in-memory stores, a controllable clock and remote service doubles
so that sync behavior can be exercised without a network or real time.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from hometrack.config import SessionConfig, SyncConfig, reset_config
from hometrack.infrastructure.storage import MemoryBackend
from hometrack.local_store import LocalStore
from hometrack.reliability import ConnectivityMonitor, MutationQueue, RemoteSessionManager
from hometrack.remote.base import RemoteService


class ManualClock:
    """Clock callable whose time only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def instant_sleep(delay: float) -> None:
    """Stand-in for asyncio.sleep that only yields to the loop."""
    await asyncio.sleep(0)


def make_remote() -> AsyncMock:
    """AsyncMock shaped like RemoteService whose calls all succeed."""
    remote = AsyncMock(spec=RemoteService)
    remote.health_check.return_value = "ok"
    remote.get_profile.return_value = None
    remote.get_all_houses.return_value = []
    remote.get_payment_history.return_value = []
    remote.is_update_available.return_value = False
    return remote


@pytest.fixture(autouse=True)
def _reset_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return LocalStore(backend, user_id="alice")


@pytest.fixture
def queue(store):
    return MutationQueue(store)


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(initial_online=True)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def fast_sleep():
    return instant_sleep


@pytest.fixture
def remote():
    return make_remote()


@pytest.fixture
def session_config():
    return SessionConfig(degraded_retry_seconds=None)


@pytest.fixture
def sync_config():
    return SyncConfig(drain_debounce_seconds=0.0, min_drain_interval_seconds=2.0)


@pytest.fixture
def session_factory(remote, session_config, clock):
    """Build a RemoteSessionManager that connects to ``remote`` instantly."""

    def _factory(connect=None, config=None):
        async def _connect():
            return remote

        return RemoteSessionManager(
            connect=connect or _connect,
            config=config or session_config,
            clock=clock,
            sleep=instant_sleep,
        )

    return _factory
