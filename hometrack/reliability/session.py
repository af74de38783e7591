"""Lifecycle of the remote service session handle.

State machine:

    ABSENT --start()--> CONNECTING --handle confirmed--> READY
                            |                              |
                  timeout / attempts exhausted       invalidate()
                            v                              |
                        DEGRADED --manual_retry()--> CONNECTING <--+

``attempt_number`` is estimated from elapsed time while connecting and is
meant for display only; the actual reconnect timing is driven by
``SessionConfig.retry_delays``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum

from hometrack.config import SessionConfig
from hometrack.errors import SessionUnavailableError
from hometrack.remote.base import RemoteService

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """State of the remote session."""

    ABSENT = "absent"
    CONNECTING = "connecting"
    READY = "ready"
    DEGRADED = "degraded"


ConnectFactory = Callable[[], Awaitable[RemoteService]]
SessionListener = Callable[[SessionState, SessionState], None]


def estimate_attempt(elapsed: float, boundaries: list[float], max_attempts: int) -> int:
    """Map elapsed connect time to a displayed attempt number.

    With the default boundaries (1, 3, 7, 11, 15 s) an elapsed time of 4 s
    reports attempt 2.
    """
    attempt = sum(1 for boundary in boundaries if elapsed >= boundary)
    return min(attempt, max_attempts)


class RemoteSessionManager:
    """Acquire and hold the handle used for remote calls.

    Must be driven from inside a running event loop: ``start``,
    ``manual_retry`` and ``invalidate`` schedule the connect coroutine on it.

    Example:
        >>> manager = RemoteSessionManager(connect=lambda: make_remote())
        >>> manager.start()
        >>> await manager.wait_ready(timeout=20)
        True
    """

    def __init__(
        self,
        connect: ConnectFactory,
        config: SessionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the session manager.

        Args:
            connect: Coroutine factory returning a fresh remote handle.
            config: Timeouts and retry schedule.
            clock: Monotonic time source in seconds.
            sleep: Awaitable sleep used between connect attempts.
        """
        self._connect = connect
        self._config = config or SessionConfig()
        self._clock = clock
        self._sleep = sleep

        self._state = SessionState.ABSENT
        self._handle: RemoteService | None = None
        self._started_at = clock()
        self._last_state_change = clock()
        self._last_error: Exception | None = None
        self._task: asyncio.Task[None] | None = None
        self._ready_event = asyncio.Event()
        self._listeners: list[SessionListener] = []

    # Status

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == SessionState.READY and self._handle is not None

    @property
    def is_connecting(self) -> bool:
        return self._state == SessionState.CONNECTING

    @property
    def has_error(self) -> bool:
        return self._state == SessionState.DEGRADED

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    @property
    def attempt_number(self) -> int:
        """Estimated connect attempt, for display only."""
        if self._state == SessionState.CONNECTING:
            return estimate_attempt(
                self._clock() - self._started_at,
                self._config.attempt_boundaries,
                self._config.max_attempts,
            )
        if self._state == SessionState.DEGRADED:
            return self._config.max_attempts
        return 0

    @property
    def show_retry_prompt(self) -> bool:
        return self.has_error and self.attempt_number >= self.max_attempts

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def handle(self) -> RemoteService | None:
        return self._handle if self._state == SessionState.READY else None

    def require_handle(self) -> RemoteService:
        """Return the ready handle or raise SessionUnavailableError."""
        handle = self.handle
        if handle is None:
            raise SessionUnavailableError(details={"state": self._state.value})
        return handle

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Register a callback for state changes; returns an unregister function."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # Transitions

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self._last_state_change = self._clock()
        if new_state == SessionState.READY:
            self._ready_event.set()
        else:
            self._ready_event.clear()

        logger.info(f"Remote session: {old_state.value} -> {new_state.value}")
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"Session listener failed: {e}")

    def _cancel_task(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    def _begin_connect(self) -> None:
        self._cancel_task()
        self._handle = None
        now = self._clock()
        self._started_at = now
        self._last_error = None
        self._set_state(SessionState.CONNECTING)
        self._last_state_change = now
        self._task = asyncio.get_running_loop().create_task(self._acquire())

    def _degrade(self, reason: str) -> None:
        logger.warning(f"Remote session degraded: {reason}")
        self._handle = None
        self._set_state(SessionState.DEGRADED)

        delay = self._config.degraded_retry_seconds
        if delay is not None:
            self._cancel_task()
            self._task = asyncio.get_running_loop().create_task(self._auto_recover(delay))

    async def _auto_recover(self, delay: float) -> None:
        await self._sleep(delay)
        if self._state == SessionState.DEGRADED:
            logger.info("Retrying degraded remote session")
            self._task = None
            self._begin_connect()

    async def _acquire(self) -> None:
        delays = [0.0, *self._config.retry_delays]
        for attempt, delay in enumerate(delays, start=1):
            if delay:
                await self._sleep(delay)
            if self._state != SessionState.CONNECTING:
                return
            try:
                handle = await self._connect()
                await handle.health_check()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = e
                logger.warning(f"Session connect attempt {attempt}/{len(delays)} failed: {e}")
                continue

            if self._state != SessionState.CONNECTING:
                return
            self._handle = handle
            self._set_state(SessionState.READY)
            return

        if self._state == SessionState.CONNECTING:
            self._task = None
            self._degrade(f"{len(delays)} connect attempts failed")

    def start(self) -> None:
        """Begin acquiring a session (e.g. once an identity is available)."""
        if self._state in (SessionState.CONNECTING, SessionState.READY):
            return
        self._begin_connect()

    def manual_retry(self) -> None:
        """User-triggered reconnect; resets timers and the attempt estimate."""
        logger.info("Manual retry triggered by user")
        self._begin_connect()

    def invalidate(self) -> None:
        """Drop the current handle and re-acquire (e.g. identity changed)."""
        if self._state == SessionState.ABSENT:
            return
        logger.info("Remote session invalidated, reconnecting")
        self._begin_connect()

    def tick(self) -> SessionState:
        """Apply the connect timeout; call periodically.

        A connecting session degrades once the attempt is older than
        ``timeout_seconds`` and nothing has changed for ``grace_seconds``.
        """
        if self._state == SessionState.CONNECTING:
            now = self._clock()
            elapsed = now - self._started_at
            since_change = now - self._last_state_change
            if elapsed > self._config.timeout_seconds and since_change > self._config.grace_seconds:
                self._cancel_task()
                self._degrade("connection timeout, no progress detected")
        return self._state

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until the session is READY. Returns False on timeout."""
        if self.is_ready:
            return True
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return self.is_ready

    def stop(self) -> None:
        """Release the handle and return to ABSENT (e.g. on logout)."""
        self._cancel_task()
        self._handle = None
        self._set_state(SessionState.ABSENT)
