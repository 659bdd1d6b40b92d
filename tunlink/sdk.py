"""Synchronous handle around the connection supervisor.

``TunLinkSDK`` runs a private event loop on a daemon thread and forwards
each call onto it, so hosts without an event loop of their own (scripts,
GUI threads, foreign-call bridges) can drive a client:

    sdk = TunLinkSDK()
    sdk.set_reconnect_interval(10)
    sdk.start_client_by_verify_key_async("example.com:8024", "key", "tcp")
    ...
    sdk.close_client()
    sdk.destroy()

No call waits on the network. Calls never raise for bad input or an
unusable client; they return False, 0, "" or None instead.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Mapping, Optional

from tunlink.client import ConnectionSupervisor
from tunlink.logs import get_log_messages
from tunlink.transport import Transport
from tunlink.types import ClientConfig, ConnectionType, LogLevel, TunLinkEvents
from tunlink.version import get_version

logger = logging.getLogger(__name__)


class TunLinkSDK:
    """Handle for one logical client: create, start, observe, close, destroy."""

    def __init__(
        self,
        events: Optional[TunLinkEvents] = None,
        transports: Optional[Mapping[Any, Transport]] = None,
        log_level: LogLevel = "info",
        call_timeout: float = 5.0,
    ):
        self.call_timeout = call_timeout
        self._supervisor = ConnectionSupervisor(events, transports, log_level=log_level)
        self._destroyed = False
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="tunlink-loop", daemon=True
        )
        self._thread.start()

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    def version(self) -> str:
        """Return the version string. The returned str is the caller's own."""
        return get_version()

    def start_client_by_verify_key_async(
        self,
        server_address: str,
        verify_key: str,
        connection_type: str = ConnectionType.TCP.value,
        config_path: Optional[str] = None,
    ) -> bool:
        """Start connecting in the background and return immediately.

        Auto-reconnect is enabled as part of a successful start.

        Returns:
            True if the start was accepted, not that the client is connected
        """
        config = ClientConfig(
            server_address=server_address,
            verify_key=verify_key,
            connection_type=connection_type,
            config_path=config_path or None,
        )
        return self._call(self._supervisor.start_async, config, default=False)

    def get_client_status(self) -> bool:
        """Check if the client is connected. May lag a transition slightly."""
        return self._supervisor.get_status()

    def set_reconnect_interval(self, seconds: int) -> bool:
        return self._call(self._supervisor.reconnect.set_interval, seconds, default=False)

    def get_reconnect_interval(self) -> int:
        return self._supervisor.reconnect.get_interval()

    def is_auto_reconnect_enabled(self) -> bool:
        return self._supervisor.reconnect.is_enabled()

    def stop_auto_reconnect(self) -> None:
        self._call(self._supervisor.reconnect.disable)

    def resume_auto_reconnect(self) -> None:
        """Turn auto-reconnect back on, retrying a dropped client."""
        self._call(self._supervisor.reconnect.enable)

    def close_client(self) -> None:
        self._call(self._supervisor.close)

    def reset_client(self) -> bool:
        """Allow a closed client to be started again."""
        return self._call(self._supervisor.reset, default=False)

    def logs(self) -> str:
        """Return recent log text. The returned str is the caller's own."""
        return get_log_messages()

    def destroy(self) -> None:
        """Close the client and stop the background loop."""
        if self._destroyed:
            return

        future = asyncio.run_coroutine_threadsafe(self._supervisor.aclose(), self._loop)
        try:
            future.result(timeout=self.call_timeout)
        except concurrent.futures.TimeoutError:
            logger.error("Timed out waiting for the client to close")

        self._destroyed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=self.call_timeout)
        if not self._thread.is_alive():
            self._loop.close()

    def __enter__(self) -> "TunLinkSDK":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.destroy()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _call(self, fn: Callable[..., Any], *args: Any, default: Any = None) -> Any:
        """Run fn on the loop thread and return its result."""
        if self._destroyed:
            logger.warning("TunLink SDK has been destroyed")
            return default

        # Event callbacks run on the loop thread already
        if threading.current_thread() is self._thread:
            return fn(*args)

        async def invoke() -> Any:
            return fn(*args)

        future = asyncio.run_coroutine_threadsafe(invoke(), self._loop)
        try:
            return future.result(timeout=self.call_timeout)
        except concurrent.futures.TimeoutError:
            logger.error(f"Timed out calling {getattr(fn, '__name__', fn)}")
            return default
