"""Type definitions for TunLink."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Literal, Optional, Union

LogLevel = Literal["debug", "info", "warn", "error"]


class ConnectionType(str, Enum):
    """Transport used to reach the tunnel server."""

    TCP = "tcp"
    WS = "ws"
    WSS = "wss"

    @classmethod
    def parse(cls, tag: Any) -> Optional["ConnectionType"]:
        """Return the matching connection type, or None if the tag is unknown."""
        if isinstance(tag, cls):
            return tag
        if not isinstance(tag, str):
            return None
        try:
            return cls(tag.strip().lower())
        except ValueError:
            return None


class ConnectionState(str, Enum):
    """Lifecycle state of the logical client."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


@dataclass(frozen=True)
class ClientConfig:
    """Connection parameters for one logical client."""

    server_address: str
    """Server address, e.g. "example.com:8024" (required)."""

    verify_key: str
    """Verification key issued by the server (required)."""

    connection_type: Union[str, ConnectionType] = ConnectionType.TCP
    """Transport tag: tcp, ws or wss (default: tcp)."""

    config_path: Optional[str] = None
    """Optional config path, handed to the transport untouched."""

    connect_timeout: float = 10.0
    """Connection and handshake timeout in seconds (default: 10.0)."""

    ping_interval: float = 30.0
    """Keepalive ping interval in seconds (default: 30.0)."""


@dataclass(frozen=True)
class ReconnectSettings:
    """Auto-reconnect settings, always replaced as a pair."""

    enabled: bool = False
    """Whether dropped connections are retried automatically."""

    interval_seconds: int = 5
    """Delay before each retry, in whole seconds (default: 5)."""


@dataclass
class TunLinkEvents:
    """Event handlers for the connection supervisor."""

    on_connect: Optional[Callable[[ClientConfig], None]] = None
    """Called when the connection is established."""

    on_disconnect: Optional[Callable[[Optional[str]], None]] = None
    """Called when an established connection is lost."""

    on_error: Optional[Callable[[BaseException], None]] = None
    """Called when a connection attempt or session fails."""

    on_reconnect: Optional[Callable[[int], None]] = None
    """Called on each automatic reconnection attempt."""

    on_status: Optional[Callable[[str], None]] = None
    """Called on every state change with the new state value."""
