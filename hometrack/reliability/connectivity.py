"""Network presence tracking.

Trusts the platform's network-interface signal only; it does not probe the
remote service. Local network presence therefore does not guarantee the
remote service is reachable, which is why queue drains still tolerate
per-item failures.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

logger = logging.getLogger(__name__)


class ConnectivityState(Enum):
    """Network presence as reported by the platform."""

    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class ConnectivityTransition:
    """A recorded state change."""

    old: ConnectivityState
    new: ConnectivityState
    timestamp: datetime


StateListener = Callable[[ConnectivityState, ConnectivityState], None]


class ConnectivityMonitor:
    """Two-state online/offline monitor with a one-shot reconnect edge.

    Example:
        >>> monitor = ConnectivityMonitor()
        >>> monitor.set_online(False)
        >>> monitor.set_online(True)
        >>> monitor.consume_reconnect()
        True
        >>> monitor.consume_reconnect()
        False
    """

    def __init__(self, initial_online: bool = True, max_history: int = 100) -> None:
        """Initialize the monitor.

        Args:
            initial_online: Starting state; assume online until told otherwise.
            max_history: Number of transitions kept for diagnostics.
        """
        self._state = ConnectivityState.ONLINE if initial_online else ConnectivityState.OFFLINE
        self._was_offline = False
        self._lock = threading.RLock()
        self._listeners: list[StateListener] = []
        self._history: list[ConnectivityTransition] = []
        self._max_history = max_history

    @property
    def state(self) -> ConnectivityState:
        with self._lock:
            return self._state

    @property
    def is_online(self) -> bool:
        return self.state == ConnectivityState.ONLINE

    @property
    def was_offline(self) -> bool:
        """Whether an offline->online edge is pending, without consuming it."""
        with self._lock:
            return self._was_offline

    def consume_reconnect(self) -> bool:
        """Return and clear the offline->online edge flag."""
        with self._lock:
            edge = self._was_offline
            self._was_offline = False
            return edge

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback for state changes.

        Returns:
            A function that unregisters the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def set_online(self, online: bool) -> None:
        """Feed the platform's network-presence signal."""
        new_state = ConnectivityState.ONLINE if online else ConnectivityState.OFFLINE

        with self._lock:
            old_state = self._state
            if old_state == new_state:
                return
            self._state = new_state
            if new_state == ConnectivityState.ONLINE:
                self._was_offline = True
            self._history.append(
                ConnectivityTransition(old=old_state, new=new_state, timestamp=datetime.now(UTC))
            )
            if len(self._history) > self._max_history:
                self._history.pop(0)
            listeners = list(self._listeners)

        if new_state == ConnectivityState.ONLINE:
            logger.info("Connectivity restored")
        else:
            logger.warning("Connectivity lost")

        for listener in listeners:
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}")

    def get_history(self, last_n: int = 10) -> list[ConnectivityTransition]:
        with self._lock:
            return self._history[-last_n:]
