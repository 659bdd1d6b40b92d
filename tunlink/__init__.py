"""TunLink - Client connection manager for tunnel servers."""

from tunlink.client import ConnectionSupervisor
from tunlink.reconnect import ReconnectPolicy
from tunlink.sdk import TunLinkSDK
from tunlink.types import (
    ClientConfig,
    ConnectionState,
    ConnectionType,
    ReconnectSettings,
    TunLinkEvents,
)
from tunlink.version import VERSION

__version__ = VERSION
__all__ = [
    "ClientConfig",
    "ConnectionState",
    "ConnectionSupervisor",
    "ConnectionType",
    "ReconnectPolicy",
    "ReconnectSettings",
    "TunLinkEvents",
    "TunLinkSDK",
]
