"""Remote service boundary and its HTTP implementation."""

from __future__ import annotations

from hometrack.remote.base import RemoteService
from hometrack.remote.http import HttpRemoteService

__all__ = [
    "RemoteService",
    "HttpRemoteService",
]
