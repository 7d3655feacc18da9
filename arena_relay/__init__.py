"""Authoritative relay for the Dagger Arena multiplayer game.

The package exposes a transport-free :class:`World` that turns inbound
frames into outbound deliveries, plus a FastAPI application that hosts it
behind a WebSocket endpoint.
"""

from .config import RelayConfig
from .dispatcher import World
from .models import Outbound

__all__ = [
    "Outbound",
    "RelayConfig",
    "World",
]
