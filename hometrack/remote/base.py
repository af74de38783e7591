"""Remote service boundary.

The authoritative store is reached only through these operations. Any
exception raised by an implementation is treated by the sync engine as a
retryable failure of that one call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from hometrack.models import (
    AppVersion,
    BootstrapSnapshot,
    House,
    HouseProgress,
    Payment,
    UserProfile,
)


class RemoteService(ABC):
    """Async interface to the remote data service.

    Payment dates passed to mutations are epoch nanoseconds; payments
    returned by reads carry epoch milliseconds like the local store.
    """

    # Mutations

    @abstractmethod
    async def add_or_update_house(self, house: House) -> None:
        pass

    @abstractmethod
    async def delete_house(self, house_id: str) -> None:
        """Delete a house and, server-side, all of its payments."""
        pass

    @abstractmethod
    async def add_payment(
        self,
        payment_id: str,
        amount: float,
        note: str,
        house_id: str,
        payment_method: str,
        date_ns: int | None,
    ) -> None:
        """Record a payment. A None date means "now" on the server."""
        pass

    @abstractmethod
    async def edit_payment(
        self,
        payment_id: str,
        amount: float,
        note: str,
        house_id: str,
        payment_method: str,
        date_ns: int,
    ) -> None:
        pass

    @abstractmethod
    async def delete_payment(self, payment_id: str) -> None:
        pass

    @abstractmethod
    async def save_profile(self, profile: UserProfile) -> None:
        pass

    # Reads

    @abstractmethod
    async def get_profile(self) -> UserProfile | None:
        pass

    @abstractmethod
    async def get_all_houses(self) -> list[House]:
        pass

    @abstractmethod
    async def get_payment_history(self, house_id: str) -> list[Payment]:
        pass

    @abstractmethod
    async def get_house_progress(self, house_id: str) -> HouseProgress:
        pass

    @abstractmethod
    async def get_bootstrap_snapshot(self) -> BootstrapSnapshot:
        """Profile, houses with progress and dashboard summary in one call."""
        pass

    # Version and health

    @abstractmethod
    async def get_current_version(self) -> AppVersion:
        pass

    @abstractmethod
    async def is_update_available(self, client_version: AppVersion) -> bool:
        pass

    @abstractmethod
    async def health_check(self) -> str:
        """Cheap call used to confirm a fresh session is usable."""
        pass
