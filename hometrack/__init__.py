"""hometrack - Offline-first mortgage repayment tracker sync engine.

Keeps houses, payments and the user profile usable without a connection and
reconciles them with the remote service once it is reachable.
"""

from hometrack.client import MutationResult, OfflineFirstClient
from hometrack.errors import HometrackError, SavedLocallyError
from hometrack.local_store import LocalStore
from hometrack.models import CLIENT_VERSION, House, Payment, SyncOpType, UserProfile

__version__ = "0.30.0"

__all__ = [
    "CLIENT_VERSION",
    "HometrackError",
    "House",
    "LocalStore",
    "MutationResult",
    "OfflineFirstClient",
    "Payment",
    "SavedLocallyError",
    "SyncOpType",
    "UserProfile",
]
