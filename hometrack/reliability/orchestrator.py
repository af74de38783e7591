"""Drains the mutation queue against the remote service.

A drain runs only when the session is ready, the device is online and no
other drain is in flight. Items are replayed in insertion order; each one
either succeeds (and leaves the queue), fails (and is retried on a later
pass), or exhausts its retries (and is dropped with an error notice).

Triggers:
- the session becomes READY while items are queued
- connectivity goes offline -> online while items are queued
- a periodic check while ready and online

Event triggers go through ``schedule_drain`` which debounces bursts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from hometrack.config import SyncConfig
from hometrack.errors import ErrorCode, SyncError, unknown_operation
from hometrack.local_store import LocalStore
from hometrack.models import House, SyncOpType, SyncQueueItem, UserProfile, ms_to_ns
from hometrack.reliability.connectivity import ConnectivityMonitor, ConnectivityState
from hometrack.reliability.queue import MutationQueue
from hometrack.reliability.session import RemoteSessionManager, SessionState
from hometrack.remote.base import RemoteService

logger = logging.getLogger(__name__)

NoticeLevel = Literal["info", "success", "error"]


@dataclass(frozen=True)
class Notice:
    """User-facing message emitted by a drain."""

    level: NoticeLevel
    message: str


@dataclass
class DrainResult:
    """Outcome of one drain pass.

    Attributes:
        attempted: Items dispatched to the remote service.
        succeeded: Items confirmed and removed from the queue.
        failed: Items that failed and stay queued for a later pass.
        dropped: Items removed without success (retries exhausted or unusable).
        skipped_reason: Why the pass did not run, if it did not.
    """

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


def _require(payload: dict[str, Any], key: str) -> Any:
    try:
        return payload[key]
    except KeyError:
        raise SyncError(
            f"Queued payload is missing '{key}'",
            code=ErrorCode.SYN_INVALID_PAYLOAD,
            details={"missing": key},
        ) from None


class SyncOrchestrator:
    """Coordinates queue drains with session and connectivity state.

    Example:
        >>> orchestrator = SyncOrchestrator(queue, store, session, connectivity)
        >>> orchestrator.start()
        >>> result = await orchestrator.drain()
        >>> result.succeeded
        2
    """

    def __init__(
        self,
        queue: MutationQueue,
        store: LocalStore,
        session: RemoteSessionManager,
        connectivity: ConnectivityMonitor,
        config: SyncConfig | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        on_synced: Callable[[], Any] | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            queue: Mutation queue to drain.
            store: Local store receiving the last-sync timestamp.
            session: Provides the remote handle.
            connectivity: Network presence monitor.
            config: Debounce, rate limit and retry settings.
            on_notice: Receives user-facing notices.
            on_synced: Called after a pass with at least one success,
                e.g. to invalidate cached reads. May return an awaitable.
            clock: Wall clock in seconds.
            sleep: Awaitable sleep for the debounce and periodic loop.
        """
        self._queue = queue
        self._store = store
        self._session = session
        self._connectivity = connectivity
        self._config = config or SyncConfig()
        self._on_notice = on_notice
        self._on_synced = on_synced
        self._clock = clock
        self._sleep = sleep

        self._in_progress = False
        self._last_attempt: float | None = None
        self._pending: asyncio.Task[DrainResult | None] | None = None
        self._debouncing = False
        self._periodic: asyncio.Task[None] | None = None
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def can_sync(self) -> bool:
        return self._session.is_ready and self._connectivity.is_online and not self._in_progress

    # Triggers

    def schedule_drain(self) -> asyncio.Task[DrainResult | None]:
        """Run a drain after the debounce delay.

        A drain still waiting out its debounce is replaced. One that is
        already replaying items runs to completion; the new request then
        skips if it is still busy when its own delay ends.
        """
        if self._debouncing and self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._debouncing = True
        self._pending = asyncio.get_running_loop().create_task(self._debounced_drain())
        return self._pending

    async def _debounced_drain(self) -> DrainResult | None:
        await self._sleep(self._config.drain_debounce_seconds)
        self._debouncing = False
        if not self.can_sync:
            return None
        return await self.drain()

    def _on_session_change(self, old: SessionState, new: SessionState) -> None:
        if new == SessionState.READY and len(self._queue) > 0:
            logger.info("Session ready with pending changes, scheduling sync")
            self.schedule_drain()

    def _on_connectivity_change(self, old: ConnectivityState, new: ConnectivityState) -> None:
        if new != ConnectivityState.ONLINE:
            return
        if self._connectivity.consume_reconnect() and len(self._queue) > 0:
            logger.info("Back online with pending changes, scheduling sync")
            self.schedule_drain()

    async def _periodic_loop(self) -> None:
        while True:
            await self._sleep(self._config.periodic_interval_seconds)
            if self.can_sync and len(self._queue) > 0:
                await self.drain()

    def start(self) -> None:
        """Subscribe to session and connectivity changes and start the periodic check."""
        if self._periodic is not None:
            return
        self._unsubscribers = [
            self._session.add_listener(self._on_session_change),
            self._connectivity.add_listener(self._on_connectivity_change),
        ]
        self._periodic = asyncio.get_running_loop().create_task(self._periodic_loop())
        logger.debug("Sync orchestrator started")

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self._periodic is not None and not self._periodic.done():
            self._periodic.cancel()
        if self._debouncing and self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._debouncing = False
        self._periodic = None
        self._pending = None
        logger.debug("Sync orchestrator stopped")

    # Drain

    def _notify(self, level: NoticeLevel, message: str) -> None:
        if self._on_notice is None:
            return
        try:
            self._on_notice(Notice(level, message))
        except Exception as e:
            logger.error(f"Notice handler failed: {e}")

    async def drain(self) -> DrainResult:
        """Replay every queued item once, in insertion order."""
        handle = self._session.handle
        if handle is None:
            return DrainResult(skipped_reason="session_not_ready")
        if not self._connectivity.is_online:
            return DrainResult(skipped_reason="offline")
        if self._in_progress:
            return DrainResult(skipped_reason="in_progress")

        now = self._clock()
        if (
            self._last_attempt is not None
            and now - self._last_attempt < self._config.min_drain_interval_seconds
        ):
            logger.debug("Sync rate limited, skipping")
            return DrainResult(skipped_reason="rate_limited")

        items = self._queue.list_all()
        if not items:
            return DrainResult(skipped_reason="empty")

        self._in_progress = True
        self._last_attempt = now
        result = DrainResult()
        try:
            logger.info(f"Syncing {len(items)} pending changes")
            self._notify("info", f"Syncing {len(items)} pending changes...")

            for item in items:
                await self._process(handle, item, result)

            if result.succeeded > 0:
                self._store.set_last_sync_time(int(self._clock() * 1000))
                self._notify("success", f"Successfully synced {result.succeeded} changes")
                await self._fire_synced()
            elif result.failed + result.dropped > 0:
                self._notify(
                    "error",
                    f"Failed to sync {result.failed + result.dropped} changes. Will retry later.",
                )
        finally:
            self._in_progress = False

        logger.info(
            f"Sync finished: {result.succeeded} synced, {result.failed} failed, "
            f"{result.dropped} dropped"
        )
        return result

    async def _process(self, handle: RemoteService, item: SyncQueueItem, result: DrainResult) -> None:
        result.attempted += 1
        try:
            await self._dispatch(handle, item)
        except SyncError as e:
            logger.error(f"Dropping unusable {item.type.value} item {item.id}: {e}")
            self._queue.dequeue_by_id(item.id)
            result.dropped += 1
            return
        except Exception as e:
            self._record_failure(item, e, result)
            return

        self._queue.dequeue_by_id(item.id)
        result.succeeded += 1
        logger.debug(f"Synced {item.type.value} item {item.id}")

    def _record_failure(self, item: SyncQueueItem, error: Exception, result: DrainResult) -> None:
        logger.warning(f"Failed to sync {item.type.value} item {item.id}: {error}")
        retry_count = self._queue.increment_retry(item.id)
        if retry_count is None:
            return

        if retry_count >= self._queue.max_retries:
            logger.error(
                f"Dropping {item.type.value} item {item.id} after {retry_count} attempts"
            )
            self._queue.dequeue_by_id(item.id)
            result.dropped += 1
            self._notify(
                "error", f"Failed to sync {item.type.value} after {self._queue.max_retries} attempts"
            )
        else:
            result.failed += 1

    async def _fire_synced(self) -> None:
        if self._on_synced is None:
            return
        try:
            outcome = self._on_synced()
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Post-sync hook failed: {e}")

    async def _dispatch(self, handle: RemoteService, item: SyncQueueItem) -> None:
        """Replay one queued mutation against the remote service."""
        payload = item.payload
        op_type = item.type

        if op_type in (SyncOpType.ADD_HOUSE, SyncOpType.UPDATE_HOUSE):
            try:
                house = House.from_dict(payload)
            except (KeyError, TypeError, ValueError) as e:
                raise SyncError(
                    f"Queued house payload is invalid: {e}",
                    code=ErrorCode.SYN_INVALID_PAYLOAD,
                    cause=e,
                ) from e
            await handle.add_or_update_house(house)

        elif op_type == SyncOpType.DELETE_HOUSE:
            await handle.delete_house(_require(payload, "house_id"))

        elif op_type == SyncOpType.ADD_PAYMENT:
            date_ms = payload.get("date")
            await handle.add_payment(
                payment_id=_require(payload, "payment_id"),
                amount=float(_require(payload, "amount")),
                note=payload.get("note", ""),
                house_id=_require(payload, "house_id"),
                payment_method=payload.get("payment_method", ""),
                date_ns=ms_to_ns(date_ms) if date_ms is not None else None,
            )

        elif op_type == SyncOpType.EDIT_PAYMENT:
            await handle.edit_payment(
                payment_id=_require(payload, "payment_id"),
                amount=float(_require(payload, "amount")),
                note=payload.get("note", ""),
                house_id=_require(payload, "house_id"),
                payment_method=payload.get("payment_method", ""),
                date_ns=ms_to_ns(_require(payload, "date")),
            )

        elif op_type == SyncOpType.DELETE_PAYMENT:
            await handle.delete_payment(_require(payload, "payment_id"))

        elif op_type == SyncOpType.UPDATE_PROFILE:
            await handle.save_profile(UserProfile.from_dict(payload))

        else:
            raise unknown_operation(str(op_type))
