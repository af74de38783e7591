"""JSON-over-HTTP implementation of the remote service boundary.

Wraps a requests session; blocking calls run in a worker thread so the
event loop stays responsive. Retrying is left to the mutation queue, so each
call here is a single attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from hometrack.config import RemoteConfig
from hometrack.errors import RemoteCallError
from hometrack.models import (
    AppVersion,
    BootstrapSnapshot,
    House,
    HouseProgress,
    Payment,
    UserProfile,
    ns_to_ms,
)
from hometrack.remote.base import RemoteService

logger = logging.getLogger(__name__)


def _payment_from_wire(data: dict[str, Any]) -> Payment:
    wire = dict(data)
    wire["date"] = ns_to_ms(wire.get("date", 0))
    return Payment.from_dict(wire)


class HttpRemoteService(RemoteService):
    """Remote service client speaking JSON over HTTP.

    Example:
        >>> remote = HttpRemoteService("https://tracker.example.com/api", auth_token=token)
        >>> await remote.health_check()
        'ok'
    """

    def __init__(
        self,
        base_url: str | None = None,
        config: RemoteConfig | None = None,
        session: requests.Session | None = None,
        auth_token: str | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Service root; defaults to ``config.base_url``.
            config: Endpoint and timeout settings.
            session: Optional requests session to use.
            auth_token: Bearer token identifying the caller.
        """
        self._config = config or RemoteConfig()
        self._base_url = (base_url or self._config.base_url).rstrip("/")
        self._session = session or self._create_session()
        if auth_token:
            self._session.headers["Authorization"] = f"Bearer {auth_token}"

    def _create_session(self) -> requests.Session:
        session = requests.Session()

        # The mutation queue owns retries
        adapter = HTTPAdapter(max_retries=Retry(total=0))
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update(
            {
                "User-Agent": self._config.user_agent,
                "Accept": "application/json",
            }
        )
        return session

    def _request_sync(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(
                method=method,
                url=url,
                timeout=(self._config.connect_timeout, self._config.read_timeout),
                **kwargs,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise RemoteCallError(
                f"{operation} timed out", operation=operation, timeout=True, cause=e
            ) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise RemoteCallError(
                f"{operation} failed with HTTP {status}",
                operation=operation,
                status_code=status,
                cause=e,
            ) from e
        except requests.exceptions.RequestException as e:
            raise RemoteCallError(f"{operation} failed: {e}", operation=operation, cause=e) from e

        if not response.content:
            return None
        return response.json()

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        logger.debug(f"{method} {path} ({operation})")
        return await asyncio.to_thread(self._request_sync, method, path, operation, **kwargs)

    # Mutations

    async def add_or_update_house(self, house: House) -> None:
        await self._request("PUT", f"/houses/{house.id}", "add_or_update_house", json=house.to_dict())

    async def delete_house(self, house_id: str) -> None:
        await self._request("DELETE", f"/houses/{house_id}", "delete_house")

    async def add_payment(
        self,
        payment_id: str,
        amount: float,
        note: str,
        house_id: str,
        payment_method: str,
        date_ns: int | None,
    ) -> None:
        body = {
            "id": payment_id,
            "amount": amount,
            "note": note,
            "house_id": house_id,
            "payment_method": payment_method,
            "date": date_ns,
        }
        await self._request("POST", "/payments", "add_payment", json=body)

    async def edit_payment(
        self,
        payment_id: str,
        amount: float,
        note: str,
        house_id: str,
        payment_method: str,
        date_ns: int,
    ) -> None:
        body = {
            "amount": amount,
            "note": note,
            "house_id": house_id,
            "payment_method": payment_method,
            "date": date_ns,
        }
        await self._request("PUT", f"/payments/{payment_id}", "edit_payment", json=body)

    async def delete_payment(self, payment_id: str) -> None:
        await self._request("DELETE", f"/payments/{payment_id}", "delete_payment")

    async def save_profile(self, profile: UserProfile) -> None:
        await self._request("PUT", "/profile", "save_profile", json=profile.to_dict())

    # Reads

    async def get_profile(self) -> UserProfile | None:
        data = await self._request("GET", "/profile", "get_profile")
        return UserProfile.from_dict(data) if data else None

    async def get_all_houses(self) -> list[House]:
        data = await self._request("GET", "/houses", "get_all_houses")
        return [House.from_dict(item) for item in data or []]

    async def get_payment_history(self, house_id: str) -> list[Payment]:
        data = await self._request("GET", f"/houses/{house_id}/payments", "get_payment_history")
        return [_payment_from_wire(item) for item in data or []]

    async def get_house_progress(self, house_id: str) -> HouseProgress:
        data = await self._request("GET", f"/houses/{house_id}/progress", "get_house_progress")
        return HouseProgress.from_dict(data)

    async def get_bootstrap_snapshot(self) -> BootstrapSnapshot:
        data = await self._request("GET", "/bootstrap", "get_bootstrap_snapshot")
        return BootstrapSnapshot.from_dict(data or {})

    # Version and health

    async def get_current_version(self) -> AppVersion:
        data = await self._request("GET", "/version", "get_current_version")
        return AppVersion.from_dict(data or {})

    async def is_update_available(self, client_version: AppVersion) -> bool:
        data = await self._request(
            "POST", "/version/check", "is_update_available", json=client_version.to_dict()
        )
        return bool(data and data.get("update_available"))

    async def health_check(self) -> str:
        data = await self._request("GET", "/health", "health_check")
        if isinstance(data, dict):
            return str(data.get("status", "ok"))
        return str(data or "ok")

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()
