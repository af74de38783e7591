"""End-to-end offline -> online sync across store, queue, session and orchestrator."""

from __future__ import annotations

import asyncio

import pytest

from hometrack.client import OfflineFirstClient
from hometrack.config import SessionConfig, SyncConfig
from hometrack.infrastructure.storage import SQLiteBackend
from hometrack.local_store import LocalStore
from hometrack.models import (
    AppVersion,
    BootstrapSnapshot,
    House,
    HouseProgress,
    Payment,
    UserProfile,
    ns_to_ms,
)
from hometrack.progress import (
    calculate_dashboard_summary,
    calculate_house_progress,
    calculate_houses_with_progress,
)
from hometrack.reliability import (
    ConnectivityMonitor,
    MutationQueue,
    RemoteSessionManager,
    SyncOrchestrator,
)
from hometrack.remote.base import RemoteService

pytestmark = pytest.mark.integration


class InMemoryRemote(RemoteService):
    """Remote service double that applies mutations to dictionaries."""

    def __init__(self) -> None:
        self.houses: dict[str, House] = {}
        self.payments: dict[str, Payment] = {}
        self.profile: UserProfile | None = None
        self.fail_next = 0
        self.calls: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise ConnectionError("service unavailable")

    async def add_or_update_house(self, house):
        self._maybe_fail("add_or_update_house")
        self.houses[house.id] = house

    async def delete_house(self, house_id):
        self._maybe_fail("delete_house")
        self.houses.pop(house_id, None)
        self.payments = {k: p for k, p in self.payments.items() if p.house_id != house_id}

    async def add_payment(self, payment_id, amount, note, house_id, payment_method, date_ns):
        self._maybe_fail("add_payment")
        self.payments[payment_id] = Payment(
            id=payment_id,
            house_id=house_id,
            amount=amount,
            note=note,
            payment_method=payment_method,
            date=ns_to_ms(date_ns),
        )

    async def edit_payment(self, payment_id, amount, note, house_id, payment_method, date_ns):
        self._maybe_fail("edit_payment")
        self.payments[payment_id] = Payment(
            id=payment_id,
            house_id=house_id,
            amount=amount,
            note=note,
            payment_method=payment_method,
            date=ns_to_ms(date_ns),
        )

    async def delete_payment(self, payment_id):
        self._maybe_fail("delete_payment")
        self.payments.pop(payment_id, None)

    async def save_profile(self, profile):
        self._maybe_fail("save_profile")
        self.profile = profile

    async def get_profile(self):
        return self.profile

    async def get_all_houses(self):
        return list(self.houses.values())

    async def get_payment_history(self, house_id):
        return [p for p in self.payments.values() if p.house_id == house_id]

    async def get_house_progress(self, house_id):
        return calculate_house_progress(self.houses[house_id], list(self.payments.values()))

    async def get_bootstrap_snapshot(self):
        houses = list(self.houses.values())
        payments = list(self.payments.values())
        return BootstrapSnapshot(
            profile=self.profile,
            houses_with_progress=calculate_houses_with_progress(houses, payments),
            dashboard_summary=calculate_dashboard_summary(houses, payments),
        )

    async def get_current_version(self):
        return AppVersion(0, 30, 0, 0)

    async def is_update_available(self, client_version):
        return False

    async def health_check(self):
        return "ok"


async def settle(rounds: int = 100) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def instant_sleep(delay: float) -> None:
    if delay >= 30:
        await asyncio.Event().wait()
    await asyncio.sleep(0)


class Clock:
    def __init__(self):
        self.now = 10_000.0

    def __call__(self):
        return self.now


@pytest.fixture
def remote_service():
    return InMemoryRemote()


@pytest.fixture
def stack(tmp_path, remote_service):
    store = LocalStore(SQLiteBackend(tmp_path / "local.db"), user_id="alice")
    queue = MutationQueue(store)
    connectivity = ConnectivityMonitor(initial_online=False)
    clock = Clock()

    async def connect():
        return remote_service

    session = RemoteSessionManager(
        connect=connect,
        config=SessionConfig(degraded_retry_seconds=None),
        clock=clock,
        sleep=instant_sleep,
    )
    notices = []
    orchestrator = SyncOrchestrator(
        queue,
        store,
        session,
        connectivity,
        config=SyncConfig(drain_debounce_seconds=0.0),
        on_notice=notices.append,
        clock=clock,
        sleep=instant_sleep,
    )
    client = OfflineFirstClient(store, queue, session, connectivity)
    return {
        "store": store,
        "queue": queue,
        "connectivity": connectivity,
        "session": session,
        "orchestrator": orchestrator,
        "client": client,
        "clock": clock,
        "notices": notices,
    }


class TestOfflineToOnline:
    @pytest.mark.asyncio
    async def test_offline_edits_replay_to_same_state(self, stack, remote_service):
        """Draining the queue leaves the remote equal to the local store."""
        client = stack["client"]
        store = stack["store"]
        queue = stack["queue"]
        orchestrator = stack["orchestrator"]
        orchestrator.start()

        await client.save_profile(UserProfile(name="Alice"))
        await client.add_or_update_house(House(id="h1", name="Maple", total_cost=300_000.0, created_at=1))
        await client.add_or_update_house(House(id="h2", name="Oak", total_cost=100_000.0, created_at=2))
        await client.add_payment("h1", 1_000.0, date_ms=1_000)
        await client.add_payment("h1", 2_000.0, date_ms=2_000)
        await client.add_payment("h2", 500.0, date_ms=3_000)
        first_h1 = client.payment_id_at("h1", 1)
        await client.edit_payment(first_h1, "h1", 1_500.0, "corrected", "card", date_ms=1_000)
        await client.add_or_update_house(House(id="h1", name="Maple Ave", total_cost=300_000.0, created_at=1))
        await client.delete_house("h2")

        assert remote_service.calls == []
        assert len(queue) > 0

        stack["connectivity"].set_online(True)
        stack["session"].start()
        await stack["session"].wait_ready(timeout=1.0)
        await settle()

        assert len(queue) == 0
        assert remote_service.profile == store.get_profile()
        assert sorted(remote_service.houses.values(), key=lambda h: h.id) == sorted(
            store.get_houses(), key=lambda h: h.id
        )
        assert sorted(remote_service.payments.values(), key=lambda p: p.id) == sorted(
            store.get_payments(), key=lambda p: p.id
        )
        assert store.get_last_sync_time() == 10_000_000
        orchestrator.stop()

    @pytest.mark.asyncio
    async def test_queue_survives_restart(self, tmp_path, stack, remote_service):
        """Items queued before a restart are drained by a fresh stack."""
        await stack["client"].add_payment("h1", 42.0, date_ms=5)
        assert len(stack["queue"]) == 1

        store = LocalStore(SQLiteBackend(tmp_path / "local.db"))
        assert store.get_user_id() == "alice"
        queue = MutationQueue(store)
        session = stack["session"]
        orchestrator = SyncOrchestrator(queue, store, session, ConnectivityMonitor(), clock=stack["clock"])

        session.start()
        await session.wait_ready(timeout=1.0)
        result = await orchestrator.drain()

        assert result.succeeded == 1
        assert len(queue) == 0
        assert [p.amount for p in remote_service.payments.values()] == [42.0]

    @pytest.mark.asyncio
    async def test_transient_failures_recover(self, stack, remote_service):
        store = stack["store"]
        queue = stack["queue"]
        orchestrator = stack["orchestrator"]
        clock = stack["clock"]
        await stack["client"].add_or_update_house(House(id="h1", created_at=1))

        stack["connectivity"].set_online(True)
        stack["session"].start()
        await stack["session"].wait_ready(timeout=1.0)

        remote_service.fail_next = 2
        assert (await orchestrator.drain()).failed == 1
        clock.now += 5
        assert (await orchestrator.drain()).failed == 1
        clock.now += 5
        assert (await orchestrator.drain()).succeeded == 1

        assert len(queue) == 0
        assert "h1" in remote_service.houses
        assert store.get_last_sync_time() == 10_010_000

    @pytest.mark.asyncio
    async def test_reads_refresh_after_sync(self, stack, remote_service):
        client = stack["client"]
        await client.add_or_update_house(House(id="h1", total_cost=1_000.0, created_at=1))
        await client.add_payment("h1", 100.0, date_ms=7)

        stack["connectivity"].set_online(True)
        stack["session"].start()
        await stack["session"].wait_ready(timeout=1.0)
        await stack["orchestrator"].drain()

        progress = await client.get_house_progress("h1")
        assert isinstance(progress, HouseProgress)
        assert progress.progress_percentage == pytest.approx(10.0)

        summary = await client.get_dashboard_summary()
        assert summary.total_houses == 1
        assert await client.get_current_version() == AppVersion(0, 30, 0, 0)
