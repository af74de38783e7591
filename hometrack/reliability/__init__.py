"""hometrack reliability layer - offline queueing and sync coordination.

This package keeps user mutations durable while the remote service is
unreachable and replays them once it is back:

- MutationQueue: Durable, ordered log of pending remote operations
- ConnectivityMonitor: Online/offline state with a reconnect edge
- RemoteSessionManager: Acquire, time out and retry the remote session
- SyncOrchestrator: Drain the queue when the session is ready and online

Example:
    >>> from hometrack.reliability import MutationQueue, SyncOrchestrator
    >>> queue = MutationQueue(store)
    >>> queue.enqueue(SyncOpType.DELETE_HOUSE, {"house_id": "h1"})
    >>> # Once the session is ready:
    >>> await orchestrator.drain()
"""

from __future__ import annotations

from hometrack.reliability.connectivity import (
    ConnectivityMonitor,
    ConnectivityState,
    ConnectivityTransition,
)
from hometrack.reliability.orchestrator import (
    DrainResult,
    Notice,
    SyncOrchestrator,
)
from hometrack.reliability.queue import (
    DEFAULT_MAX_RETRIES,
    MutationQueue,
    target_key,
)
from hometrack.reliability.session import (
    RemoteSessionManager,
    SessionState,
    estimate_attempt,
)

__all__ = [
    # Queue
    "DEFAULT_MAX_RETRIES",
    "MutationQueue",
    "target_key",
    # Connectivity monitoring
    "ConnectivityMonitor",
    "ConnectivityState",
    "ConnectivityTransition",
    # Remote session
    "RemoteSessionManager",
    "SessionState",
    "estimate_attempt",
    # Orchestration
    "DrainResult",
    "Notice",
    "SyncOrchestrator",
]
