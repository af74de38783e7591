"""Offline-first facade over the local store and the remote service.

Mutations always land in the local store first. They are then sent to the
remote service when possible, or queued for the sync orchestrator:

    offline            -> queued, MutationResult(queued=True, reason="offline")
    session not ready  -> queued, MutationResult(queued=True, reason="connecting")
    remote call fails  -> queued, SavedLocallyError raised
    remote call ok     -> MutationResult(queued=False)

Reads answer from the local store and refresh it from the remote service
when the session is ready, the device is online and no local change is
still waiting to sync. Any remote failure falls back to the local copy.

Usage:
    client = OfflineFirstClient(store, queue, session, connectivity)
    result = await client.add_payment("h1", 500.0, note="March")
    if result.queued:
        print(f"queued ({result.reason})")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from hometrack.errors import saved_locally
from hometrack.local_store import LocalStore
from hometrack.models import (
    CLIENT_VERSION,
    AppVersion,
    BootstrapSnapshot,
    DashboardSummary,
    House,
    HouseProgress,
    HouseWithProgress,
    Payment,
    SyncOpType,
    UserProfile,
    ms_to_ns,
    now_ms,
    payment_display_key,
)
from hometrack.progress import (
    calculate_dashboard_summary,
    calculate_house_progress,
    calculate_houses_with_progress,
)
from hometrack.reliability.connectivity import ConnectivityMonitor
from hometrack.reliability.orchestrator import Notice, NoticeLevel
from hometrack.reliability.queue import MutationQueue
from hometrack.reliability.session import RemoteSessionManager
from hometrack.remote.base import RemoteService

logger = logging.getLogger(__name__)

RemoteCall = Callable[[RemoteService], Awaitable[object]]


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a mutation that did not raise.

    Attributes:
        queued: True if the change is waiting in the mutation queue.
        reason: "offline" or "connecting" when queued.
        queue_item_id: Id of the queued item, if any.
    """

    queued: bool
    reason: str | None = None
    queue_item_id: str | None = None


class OfflineFirstClient:
    """Entry point for reading and changing mortgage data."""

    def __init__(
        self,
        store: LocalStore,
        queue: MutationQueue,
        session: RemoteSessionManager,
        connectivity: ConnectivityMonitor,
        notifier: Callable[[Notice], None] | None = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._session = session
        self._connectivity = connectivity
        self._notifier = notifier

    def _notify(self, level: NoticeLevel, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier(Notice(level, message))
        except Exception as e:
            logger.error(f"Notifier failed: {e}")

    # Mutations

    async def _send_or_queue(
        self,
        op_type: SyncOpType,
        payload: dict,
        call: RemoteCall,
        subject: str,
        done: str,
    ) -> MutationResult:
        """Send a mutation whose local effect is already applied."""
        if not self._connectivity.is_online:
            item = self._queue.enqueue(op_type, payload)
            logger.info(f"Offline, queued {op_type.value}")
            self._notify("success", f"{subject} locally. Will sync when online.")
            return MutationResult(queued=True, reason="offline", queue_item_id=item.id)

        handle = self._session.handle
        if handle is None:
            item = self._queue.enqueue(op_type, payload)
            logger.info(f"Session not ready, queued {op_type.value}")
            self._notify("success", f"{subject} locally. Syncing automatically when connected...")
            return MutationResult(queued=True, reason="connecting", queue_item_id=item.id)

        try:
            await call(handle)
        except Exception as e:
            item = self._queue.enqueue(op_type, payload)
            error = saved_locally(op_type.value, e, queue_item_id=item.id)
            logger.warning(f"Remote {op_type.value} failed, queued for retry: {e}")
            self._notify("info", error.message)
            raise error from e

        self._notify("success", done)
        return MutationResult(queued=False)

    async def save_profile(self, profile: UserProfile) -> MutationResult:
        self._store.save_profile(profile)
        return await self._send_or_queue(
            SyncOpType.UPDATE_PROFILE,
            profile.to_dict(),
            lambda remote: remote.save_profile(profile),
            subject="Profile saved",
            done="Profile saved successfully",
        )

    async def add_or_update_house(self, house: House) -> MutationResult:
        """Create or replace a house.

        The queued operation is ``update_house`` when a house with the same id
        already existed locally, ``add_house`` otherwise.
        """
        existed = self._store.upsert_house(house)
        op_type = SyncOpType.UPDATE_HOUSE if existed else SyncOpType.ADD_HOUSE
        return await self._send_or_queue(
            op_type,
            house.to_dict(),
            lambda remote: remote.add_or_update_house(house),
            subject="House saved",
            done="House saved successfully",
        )

    async def delete_house(self, house_id: str) -> MutationResult:
        """Delete a house and, locally, all of its payments."""
        removed = self._store.delete_house(house_id)
        logger.debug(f"Deleted house {house_id} with {removed} payments locally")
        return await self._send_or_queue(
            SyncOpType.DELETE_HOUSE,
            {"house_id": house_id},
            lambda remote: remote.delete_house(house_id),
            subject="House deleted",
            done="House deleted successfully",
        )

    async def add_payment(
        self,
        house_id: str,
        amount: float,
        note: str = "",
        payment_method: str = "",
        date_ms: int | None = None,
    ) -> MutationResult:
        """Record a payment against a house.

        Without ``date_ms`` the payment is dated now, and that same timestamp
        is queued and sent so local and remote dates agree.
        """
        payment = Payment(
            house_id=house_id,
            amount=amount,
            note=note,
            payment_method=payment_method,
            date=date_ms if date_ms is not None else now_ms(),
        )
        self._store.add_payment(payment)

        payload = {
            "payment_id": payment.id,
            "amount": amount,
            "note": note,
            "house_id": house_id,
            "payment_method": payment_method,
            "date": payment.date,
        }
        return await self._send_or_queue(
            SyncOpType.ADD_PAYMENT,
            payload,
            lambda remote: remote.add_payment(
                payment.id,
                amount,
                note,
                house_id,
                payment_method,
                ms_to_ns(payment.date),
            ),
            subject="Payment saved",
            done="Payment added successfully",
        )

    async def edit_payment(
        self,
        payment_id: str,
        house_id: str,
        amount: float,
        note: str,
        payment_method: str,
        date_ms: int,
    ) -> MutationResult:
        payment = Payment(
            id=payment_id,
            house_id=house_id,
            amount=amount,
            note=note,
            payment_method=payment_method,
            date=date_ms,
        )
        if not self._store.update_payment(payment):
            logger.warning(f"Payment {payment_id} not found locally, sending edit anyway")

        payload = {
            "payment_id": payment_id,
            "amount": amount,
            "note": note,
            "house_id": house_id,
            "payment_method": payment_method,
            "date": date_ms,
        }
        return await self._send_or_queue(
            SyncOpType.EDIT_PAYMENT,
            payload,
            lambda remote: remote.edit_payment(
                payment_id, amount, note, house_id, payment_method, ms_to_ns(date_ms)
            ),
            subject="Payment updated",
            done="Payment updated successfully",
        )

    async def delete_payment(self, payment_id: str) -> MutationResult:
        existing = self._store.get_payment(payment_id)
        self._store.remove_payment(payment_id)

        payload = {"payment_id": payment_id}
        if existing is not None:
            payload["house_id"] = existing.house_id
        return await self._send_or_queue(
            SyncOpType.DELETE_PAYMENT,
            payload,
            lambda remote: remote.delete_payment(payment_id),
            subject="Payment deleted",
            done="Payment deleted successfully",
        )

    def payment_id_at(self, house_id: str, index: int) -> str | None:
        """Map a row of the displayed payment history to its payment id."""
        payment = self._store.payment_at(house_id, index)
        return payment.id if payment else None

    # Reads

    def _refresh_handle(self) -> RemoteService | None:
        """Remote handle to refresh reads from, or None to stay local."""
        if not self._connectivity.is_online:
            return None
        if len(self._queue) > 0:
            # Unsynced local writes would be overwritten by the refresh
            return None
        return self._session.handle

    async def get_profile(self) -> UserProfile | None:
        local = self._store.get_profile()
        remote = self._refresh_handle()
        if remote is None:
            return local
        try:
            profile = await remote.get_profile()
        except Exception as e:
            logger.warning(f"Failed to fetch profile, using offline data: {e}")
            return local
        if profile is None:
            return local
        self._store.save_profile(profile)
        return profile

    async def get_all_houses(self) -> list[House]:
        local = self._store.get_houses()
        remote = self._refresh_handle()
        if remote is None:
            return local
        try:
            houses = await remote.get_all_houses()
        except Exception as e:
            logger.warning(f"Failed to fetch houses, using offline data: {e}")
            return local
        self._store.save_houses(houses)
        return houses

    async def get_houses_with_progress(self) -> list[HouseWithProgress]:
        snapshot = await self.bootstrap()
        return snapshot.houses_with_progress

    async def get_dashboard_summary(self) -> DashboardSummary:
        snapshot = await self.bootstrap()
        return snapshot.dashboard_summary

    async def get_payment_history(self, house_id: str) -> list[Payment]:
        """Payments of one house, newest first."""
        local = self._store.get_payments_by_house(house_id)
        remote = self._refresh_handle()
        if remote is None:
            return local
        try:
            payments = await remote.get_payment_history(house_id)
        except Exception as e:
            logger.warning(f"Failed to fetch payments for {house_id}, using offline data: {e}")
            return local

        others = [p for p in self._store.get_payments() if p.house_id != house_id]
        self._store.save_payments(others + payments)
        return sorted(payments, key=payment_display_key)

    async def get_house_progress(self, house_id: str) -> HouseProgress | None:
        house = self._store.get_house(house_id)
        local = (
            calculate_house_progress(house, self._store.get_payments()) if house is not None else None
        )
        remote = self._refresh_handle()
        if remote is None:
            return local
        try:
            return await remote.get_house_progress(house_id)
        except Exception as e:
            logger.warning(f"Failed to fetch progress for {house_id}, using offline data: {e}")
            return local

    def _local_snapshot(self) -> BootstrapSnapshot:
        houses = self._store.get_houses()
        payments = self._store.get_payments()
        return BootstrapSnapshot(
            profile=self._store.get_profile(),
            houses_with_progress=calculate_houses_with_progress(houses, payments),
            dashboard_summary=calculate_dashboard_summary(houses, payments),
        )

    async def bootstrap(self) -> BootstrapSnapshot:
        """Profile, houses with progress and the dashboard summary.

        Fetched in one remote call when possible; the profile and houses it
        returns replace the local copies.
        """
        remote = self._refresh_handle()
        if remote is None:
            return self._local_snapshot()
        try:
            snapshot = await remote.get_bootstrap_snapshot()
        except Exception as e:
            logger.warning(f"Bootstrap fetch failed, using offline data: {e}")
            return self._local_snapshot()

        if snapshot.profile is not None:
            self._store.save_profile(snapshot.profile)
        self._store.save_houses([item.house for item in snapshot.houses_with_progress])
        return snapshot

    # Version

    async def get_current_version(self) -> AppVersion | None:
        """Version reported by the remote service, or None if unavailable."""
        remote = self._session.handle if self._connectivity.is_online else None
        if remote is None:
            return None
        try:
            return await remote.get_current_version()
        except Exception as e:
            logger.warning(f"Version check failed: {e}")
            return None

    async def check_for_update(self, client_version: AppVersion = CLIENT_VERSION) -> bool:
        """Whether the remote service offers a newer version. False on any failure."""
        remote = self._session.handle if self._connectivity.is_online else None
        if remote is None:
            return False
        try:
            return await remote.is_update_available(client_version)
        except Exception as e:
            logger.warning(f"Update check failed: {e}")
            return False
