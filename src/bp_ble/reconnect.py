"""Automatic reconnect after an unexpected disconnect."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from src.bp_ble.events import DisconnectedEvent, EventKind

if TYPE_CHECKING:
    from src.bp_ble.client import ConnectionManager

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 3.0  # seconds


class ReconnectionPolicy:
    """Schedules a single reconnect attempt when the link drops unexpectedly.

    Requested disconnects are ignored. A new unexpected disconnect replaces
    any attempt still waiting; a failed attempt is logged and not retried.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        delay: float = DEFAULT_RECONNECT_DELAY,
        connect: Callable[[], Awaitable[Any]] | None = None,
    ):
        """Initialize reconnection policy.

        Args:
            manager: Connection manager whose disconnects are watched
            delay: Seconds to wait before the reconnect attempt
            connect: Coroutine function performing the attempt (defaults to
                manager.connect). A result of False counts as a failure.
        """
        self.manager = manager
        self.delay = delay
        self._connect = connect or manager.connect
        self._task: asyncio.Task | None = None
        self._active = False

    @property
    def pending(self) -> bool:
        """Whether a reconnect attempt is scheduled or running."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self._active:
            self.manager.hub.on(EventKind.DISCONNECTED, self._on_disconnected)
            self._active = True

    def stop(self) -> None:
        if self._active:
            self.manager.hub.off(EventKind.DISCONNECTED, self._on_disconnected)
            self._active = False
        self._cancel_pending()

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _on_disconnected(self, event: DisconnectedEvent) -> None:
        if not event.unexpected:
            return

        logger.info(f"Scheduling reconnect in {self.delay:g}s")
        self._cancel_pending()
        self._task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        await asyncio.sleep(self.delay)
        logger.info("Attempting auto-reconnect...")
        try:
            result = await self._connect()
        except Exception as e:
            logger.error(f"Auto-reconnect failed: {e}")
            return
        if result is False:
            logger.error("Auto-reconnect failed")
            return

        info = self.manager.device_info
        logger.info(f"Reconnected to {info.name if info else 'device'}")
