"""Automatic reconnection policy."""

import asyncio
import logging
import threading
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from tunlink.types import ConnectionState, ReconnectSettings

if TYPE_CHECKING:
    from tunlink.client import ConnectionSupervisor

logger = logging.getLogger(__name__)


class ReconnectPolicy:
    """Retries a dropped connection after a fixed, live-adjustable interval.

    One wait cycle runs per observed disconnect. The cycle snapshots the
    settings before sleeping, so an interval change applies from the next
    cycle on. Disabling the policy cancels a pending wait at once.
    """

    def __init__(
        self,
        supervisor: "ConnectionSupervisor",
        settings: Optional[ReconnectSettings] = None,
    ):
        self._supervisor = supervisor
        self._settings = settings or ReconnectSettings()
        self._lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def settings(self) -> ReconnectSettings:
        """Current settings, read as one consistent pair."""
        with self._lock:
            return self._settings

    def set_interval(self, seconds: int) -> bool:
        """Set the retry interval in seconds.

        Returns:
            False (and keeps the old value) unless seconds is a positive int
        """
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
            logger.warning(f"Rejected reconnect interval: {seconds!r}")
            return False

        with self._lock:
            self._settings = replace(self._settings, interval_seconds=seconds)
        logger.info(f"Reconnect interval set to {seconds}s")
        return True

    def get_interval(self) -> int:
        return self.settings.interval_seconds

    def is_enabled(self) -> bool:
        return self.settings.enabled

    def enable(self) -> None:
        """Turn auto-reconnect on.

        Called on the supervisor's loop, a client that is already
        disconnected starts its wait cycle right away.
        """
        with self._lock:
            was_enabled = self._settings.enabled
            self._settings = replace(self._settings, enabled=True)
        if not was_enabled:
            logger.info("Auto-reconnect enabled")

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            return
        if running is self._supervisor._loop:
            self.arm()

    def disable(self) -> None:
        """Turn auto-reconnect off and abort any pending wait."""
        with self._lock:
            was_enabled = self._settings.enabled
            self._settings = replace(self._settings, enabled=False)
        if was_enabled:
            logger.info("Auto-reconnect disabled")
        self.cancel()

    def is_pending(self) -> bool:
        """Check if a wait cycle is in progress."""
        return self._task is not None and not self._task.done()

    def arm(self) -> bool:
        """Start a wait cycle if the client is disconnected and retries are on.

        Must be called from the supervisor's event loop.
        """
        if self.is_pending():
            return False
        if not self.is_enabled() or self._supervisor.state is not ConnectionState.DISCONNECTED:
            return False

        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    def cancel(self) -> Optional[asyncio.Task]:
        """Cancel the pending wait cycle, returning its task."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        return task

    async def _run(self) -> None:
        """One wait cycle."""
        settings = self.settings
        logger.info(f"Reconnecting in {settings.interval_seconds}s...")

        await asyncio.sleep(settings.interval_seconds)

        if not self.is_enabled() or self._supervisor.state is not ConnectionState.DISCONNECTED:
            logger.debug("Reconnect cycle skipped")
            return

        self._task = None
        self._supervisor._retry()
