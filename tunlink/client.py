"""TunLink connection supervisor."""

import asyncio
import logging
import threading
from typing import Any, Iterable, List, Mapping, Optional

from tunlink.logs import configure_logging
from tunlink.reconnect import ReconnectPolicy
from tunlink.transport import Session, Transport, get_transport
from tunlink.types import (
    ClientConfig,
    ConnectionState,
    ConnectionType,
    LogLevel,
    ReconnectSettings,
    TunLinkEvents,
)
from tunlink.version import VERSION

logger = logging.getLogger(__name__)


class ConnectionSupervisor:
    """Owns the lifecycle of one logical client connection.

    The supervisor is bound to the event loop it is started on. Its public
    methods never wait on the network: connecting happens in a background
    task, and state changes are reported through ``state``/``get_status()``
    and the optional event callbacks.
    """

    def __init__(
        self,
        events: Optional[TunLinkEvents] = None,
        transports: Optional[Mapping[Any, Transport]] = None,
        reconnect: Optional[ReconnectSettings] = None,
        log_level: LogLevel = "info",
    ):
        """Initialize the supervisor.

        Args:
            events: Optional event handlers
            transports: Optional transport overrides keyed by connection type
            reconnect: Initial reconnect settings
            log_level: Log level: debug, info, warn, error
        """
        self.events = events or TunLinkEvents()
        self.reconnect = ReconnectPolicy(self, reconnect)
        self.reconnect_attempts = 0

        self._transports = {}
        for tag, transport in (transports or {}).items():
            connection_type = ConnectionType.parse(tag)
            if connection_type is None:
                raise ValueError(f"Unknown connection type: {tag}")
            self._transports[connection_type] = transport

        self._state = ConnectionState.IDLE
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._config: Optional[ClientConfig] = None
        self._session: Optional[Session] = None
        self._attempt: Optional[asyncio.Task] = None
        self._watch: Optional[asyncio.Task] = None
        self._releases: List[asyncio.Task] = []
        self._cancelled = False
        self._generation = 0

        configure_logging(log_level)

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def config(self) -> Optional[ClientConfig]:
        """The config of the current or last connection."""
        return self._config

    def start_async(self, config: ClientConfig) -> bool:
        """Start connecting in the background.

        Must be called from a running event loop.

        Returns:
            True if the connection attempt was scheduled, False if the
            config is invalid, the client is not idle, or an on_status
            handler closed the client during the start
        """
        problem = self._check_config(config)
        if problem:
            logger.error(f"Cannot start client: {problem}")
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("Cannot start client: no running event loop")
            return False

        if not self._transition(
            ConnectionState.CONNECTING, expected=(ConnectionState.IDLE,), notify=False
        ):
            logger.warning(f"Cannot start client while {self.state.value}")
            return False

        self._loop = loop
        self._config = config
        self._cancelled = False
        self.reconnect_attempts = 0
        self.reconnect.enable()
        generation = self._generation

        logger.info(f"Connecting to server {config.server_address} over {self._type_of(config).value}")
        self._schedule_attempt()

        # A handler may close the client; close() cancels the scheduled attempt
        self._emit("on_status", ConnectionState.CONNECTING.value)
        return not self._is_stale(generation)

    def get_status(self) -> bool:
        """Check if the client is connected."""
        return self.state is ConnectionState.CONNECTED

    def get_version(self) -> str:
        return VERSION

    def close(self) -> None:
        """Close the client. Safe to call in any state, any number of times."""
        self._cancelled = True
        self._generation += 1
        self.reconnect.disable()

        with self._lock:
            previous, self._state = self._state, ConnectionState.CLOSED

        for task in (self._attempt, self._watch):
            if task is not None and not task.done():
                task.cancel()

        session, self._session = self._session, None
        if session is not None:
            self._release(session)

        if previous is not ConnectionState.CLOSED:
            logger.info("Client closed")
            self._emit("on_status", ConnectionState.CLOSED.value)

    async def aclose(self) -> None:
        """Close the client and wait for all background work to finish."""
        pending = [self._attempt, self._watch, self.reconnect.cancel()]
        self.close()

        tasks = [task for task in pending if task is not None] + self._releases
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._releases.clear()

    def reset(self) -> bool:
        """Return a closed client to idle so it can be started again."""
        if not self._transition(ConnectionState.IDLE, expected=(ConnectionState.CLOSED,), notify=False):
            logger.warning(f"Cannot reset client while {self.state.value}")
            return False

        self._config = None
        self._cancelled = False
        self.reconnect_attempts = 0
        self._emit("on_status", ConnectionState.IDLE.value)
        return True

    def _check_config(self, config: Any) -> Optional[str]:
        if not isinstance(config, ClientConfig):
            return "config must be a ClientConfig"
        if not isinstance(config.server_address, str) or not config.server_address.strip():
            return "server address is required"
        if not isinstance(config.verify_key, str) or not config.verify_key.strip():
            return "verify key is required"
        if ConnectionType.parse(config.connection_type) is None:
            return f"unknown connection type {config.connection_type!r}"
        return None

    def _type_of(self, config: ClientConfig) -> ConnectionType:
        connection_type = ConnectionType.parse(config.connection_type)
        if connection_type is None:
            raise ValueError(f"Unknown connection type: {config.connection_type}")
        return connection_type

    def _transition(
        self,
        new_state: ConnectionState,
        expected: Optional[Iterable[ConnectionState]] = None,
        notify: bool = True,
    ) -> bool:
        """Move to new_state if the current state allows it.

        With notify=False the caller emits on_status itself, once its own
        bookkeeping for the new state is done.
        """
        with self._lock:
            if expected is not None and self._state not in expected:
                return False
            if self._state is new_state:
                return True
            old_state, self._state = self._state, new_state

        logger.debug(f"State {old_state.value} -> {new_state.value}")
        if notify:
            self._emit("on_status", new_state.value)
        return True

    def _schedule_attempt(self) -> None:
        self._attempt = self._loop.create_task(self._connect(self._config, self._generation))

    async def _connect(self, config: ClientConfig, generation: int) -> None:
        """Run one connection attempt and record its outcome."""
        transport = self._transports.get(self._type_of(config)) or get_transport(
            config.connection_type
        )

        session: Optional[Session] = None
        error: Optional[BaseException] = None
        try:
            session = await asyncio.wait_for(
                transport.connect(config),
                timeout=config.connect_timeout,
            )
        except asyncio.TimeoutError:
            error = TimeoutError("Connection timeout")
        except Exception as e:
            error = e

        if self._is_stale(generation):
            if session is not None:
                logger.debug("Discarding connection completed after close")
                self._release(session)
            return

        if session is None:
            logger.error(f"Failed to connect to {config.server_address}: {error}")
            self._emit("on_error", error)
            self._transition(ConnectionState.DISCONNECTED, expected=(ConnectionState.CONNECTING,))
            self.reconnect.arm()
            return

        if not self._transition(
            ConnectionState.CONNECTED, expected=(ConnectionState.CONNECTING,), notify=False
        ):
            self._release(session)
            return

        # close() from a handler below releases the session and cancels the watch
        self._session = session
        self.reconnect_attempts = 0
        self._watch = asyncio.get_running_loop().create_task(self._watch_session(session, generation))
        logger.info(f"Successful connection with server {config.server_address}")

        self._emit("on_status", ConnectionState.CONNECTED.value)
        if self._is_stale(generation):
            return
        self._emit("on_connect", config)

    async def _watch_session(self, session: Session, generation: int) -> None:
        """Wait for the session to drop and hand over to the reconnect policy."""
        try:
            reason = await session.wait_closed()
        except Exception as e:
            logger.error(f"Session error: {e}")
            self._emit("on_error", e)
            reason = str(e)

        if self._is_stale(generation) or self._session is not session:
            return

        self._session = None
        self._release(session)
        if self._transition(ConnectionState.DISCONNECTED, expected=(ConnectionState.CONNECTED,)):
            logger.warning(f"Disconnected from server: {reason}")
            if self._is_stale(generation):
                return
            self._emit("on_disconnect", reason)
            # arm() is a no-op once a handler has closed the client
            self.reconnect.arm()

    def _retry(self) -> bool:
        """Reconnect with the last config. Called by the reconnect policy."""
        if self._config is None or (self._attempt is not None and not self._attempt.done()):
            return False
        if not self._transition(
            ConnectionState.CONNECTING, expected=(ConnectionState.DISCONNECTED,), notify=False
        ):
            return False

        generation = self._generation
        self.reconnect_attempts += 1
        logger.info(f"Reconnecting... (attempt {self.reconnect_attempts})")
        self._schedule_attempt()

        self._emit("on_status", ConnectionState.CONNECTING.value)
        if self._is_stale(generation):
            return False
        self._emit("on_reconnect", self.reconnect_attempts)
        return not self._is_stale(generation)

    def _is_stale(self, generation: int) -> bool:
        return self._cancelled or generation != self._generation

    def _release(self, session: Session) -> None:
        """Close a session in the background."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and running is self._loop:
            self._releases = [task for task in self._releases if not task.done()]
            self._releases.append(running.create_task(self._close_session(session)))
        elif self._loop is not None and not self._loop.is_closed():
            asyncio.run_coroutine_threadsafe(self._close_session(session), self._loop)
        else:
            logger.warning("Event loop is gone, session could not be released")

    async def _close_session(self, session: Session) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.debug(f"Error while releasing session: {e}")

    def _emit(self, name: str, *args: Any) -> None:
        callback = getattr(self.events, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Event handler {name} failed")
