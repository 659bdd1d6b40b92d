"""Transports that carry the TunLink control connection."""

import abc
import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import websockets

from tunlink.errors import HandshakeError, TransportError
from tunlink.protocol import (
    MessageType,
    check_server_hello,
    create_client_hello,
    create_message,
    decode_message,
    encode_message,
)
from tunlink.types import ClientConfig, ConnectionType

logger = logging.getLogger(__name__)


class Session(abc.ABC):
    """An established connection to the server."""

    @abc.abstractmethod
    async def wait_closed(self) -> Optional[str]:
        """Block until the connection drops and return the reason."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release the connection."""


class Transport(abc.ABC):
    """Opens sessions to the server for one connection type."""

    @abc.abstractmethod
    async def connect(self, config: ClientConfig) -> Session:
        """Connect and authenticate, or raise."""


def split_address(address: str) -> Tuple[str, int]:
    """Split "host:port" (optionally with a scheme prefix) into its parts."""
    if "://" in address:
        address = address.split("://", 1)[1]
    address = address.rstrip("/")

    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise TransportError(f"Invalid server address: {address}")

    return host.strip("[]"), int(port)


def build_ws_url(address: str, secure: bool) -> str:
    """Build the websocket endpoint URL for a server address."""
    if address.startswith(("ws://", "wss://")):
        ws_url = address
    else:
        scheme = "wss" if secure else "ws"
        ws_url = f"{scheme}://{address.split('://', 1)[-1]}"

    # Ensure URL ends with /ws path
    if not ws_url.endswith("/ws"):
        ws_url = f"{ws_url.rstrip('/')}/ws"
    return ws_url


class TcpSession(Session):
    """Newline-delimited JSON session over a TCP stream."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        ping_interval: float = 30.0,
    ):
        self.reader = reader
        self.writer = writer
        self.ping_interval = ping_interval

    async def send(self, message: Dict[str, Any]) -> None:
        self.writer.write((encode_message(message) + "\n").encode("utf-8"))
        await self.writer.drain()

    async def read(self) -> Optional[Dict[str, Any]]:
        """Read the next message, or None at end of stream."""
        line = await self.reader.readline()
        if not line:
            return None
        return decode_message(line.decode("utf-8"))

    async def wait_closed(self) -> Optional[str]:
        ping_task = asyncio.create_task(self._ping_loop())
        try:
            while True:
                line = await self.reader.readline()
                if not line:
                    return "Connection closed by server"
                try:
                    message = decode_message(line.decode("utf-8"))
                except (ValueError, HandshakeError) as e:
                    logger.debug(f"Ignoring malformed message: {e}")
                    continue
                if message.get("type") == MessageType.PING.value:
                    await self.send(create_message(MessageType.PONG))
        except (OSError, ValueError) as e:
            return f"Connection error: {e}"
        finally:
            ping_task.cancel()
            try:
                await ping_task
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        if self.writer.is_closing():
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing TCP session: {e}")

    async def _ping_loop(self) -> None:
        """Periodic ping loop."""
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await self.send(create_message(MessageType.PING))
            except OSError as e:
                logger.debug(f"Ping failed: {e}")
                # Closing the writer ends the read loop with EOF
                self.writer.close()
                return


class TcpTransport(Transport):
    """Plain TCP transport."""

    async def connect(self, config: ClientConfig) -> Session:
        host, port = split_address(config.server_address)
        logger.debug(f"Dialing {host}:{port} over tcp")

        reader, writer = await asyncio.open_connection(host, port)
        session = TcpSession(reader, writer, config.ping_interval)
        try:
            await session.send(create_client_hello(config.verify_key, config.config_path))
            hello = await session.read()
            if hello is None:
                raise HandshakeError("Server closed the connection during handshake")
            check_server_hello(hello)
        except BaseException:
            writer.close()
            raise

        return session


class WebSocketSession(Session):
    """JSON text-frame session over a websocket."""

    def __init__(self, ws: Any, ping_interval: float = 30.0):
        self.ws = ws
        self.ping_interval = ping_interval

    async def send(self, message: Dict[str, Any]) -> None:
        await self.ws.send(encode_message(message))

    async def wait_closed(self) -> Optional[str]:
        ping_task = asyncio.create_task(self._ping_loop())
        try:
            async for raw in self.ws:
                try:
                    message = decode_message(raw)
                except (ValueError, HandshakeError) as e:
                    logger.debug(f"Ignoring malformed message: {e}")
                    continue
                if message.get("type") == MessageType.PING.value:
                    await self.send(create_message(MessageType.PONG))
            return "Connection closed by server"
        except websockets.exceptions.ConnectionClosed as e:
            return f"Connection closed: {e}"
        except OSError as e:
            return f"Connection error: {e}"
        finally:
            ping_task.cancel()
            try:
                await ping_task
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        await self.ws.close()

    async def _ping_loop(self) -> None:
        """Periodic ping loop."""
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await self.send(create_message(MessageType.PING))
            except websockets.exceptions.ConnectionClosed:
                return


class WebSocketTransport(Transport):
    """Websocket transport for ws and wss."""

    def __init__(self, secure: bool = False):
        self.secure = secure

    async def connect(self, config: ClientConfig) -> Session:
        ws_url = build_ws_url(config.server_address, self.secure)
        logger.debug(f"Dialing {ws_url}")

        ws = await websockets.connect(ws_url, close_timeout=config.connect_timeout)
        try:
            await ws.send(
                encode_message(create_client_hello(config.verify_key, config.config_path))
            )
            check_server_hello(decode_message(await ws.recv()))
        except BaseException:
            await ws.close()
            raise

        return WebSocketSession(ws, config.ping_interval)


TransportFactory = Callable[[], Transport]

_TRANSPORTS: Dict[ConnectionType, TransportFactory] = {
    ConnectionType.TCP: TcpTransport,
    ConnectionType.WS: lambda: WebSocketTransport(secure=False),
    ConnectionType.WSS: lambda: WebSocketTransport(secure=True),
}


def register_transport(tag: Any, factory: TransportFactory) -> None:
    """Replace the transport used for a connection type."""
    connection_type = ConnectionType.parse(tag)
    if connection_type is None:
        raise ValueError(f"Unknown connection type: {tag}")
    _TRANSPORTS[connection_type] = factory


def get_transport(tag: Any) -> Transport:
    """Create the transport registered for a connection type."""
    connection_type = ConnectionType.parse(tag)
    if connection_type is None:
        raise ValueError(f"Unknown connection type: {tag}")
    return _TRANSPORTS[connection_type]()
