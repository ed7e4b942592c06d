"""In-process publish/subscribe for connection and measurement events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, overload

if TYPE_CHECKING:
    from src.bp_ble.exceptions import DecodeError
    from src.models import Measurement

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Events published by the connection manager."""

    MEASUREMENT = "measurement"
    DISCONNECTED = "disconnected"
    DECODE_ERROR = "decode_error"


@dataclass(frozen=True)
class DisconnectedEvent:
    """Payload of EventKind.DISCONNECTED."""

    unexpected: bool


Listener = Callable[[Any], None]


class EventHub:
    """Synchronous fan-out of events to subscribers.

    Subscribers are called in registration order. A subscriber raising an
    exception is logged and skipped; the remaining subscribers still run.
    Dispatch iterates over a snapshot, so subscribers may add or remove
    listeners (including themselves) from inside a callback.
    """

    def __init__(self) -> None:
        self._listeners: dict[EventKind, list[Listener]] = {kind: [] for kind in EventKind}

    @overload
    def on(
        self, kind: Literal[EventKind.MEASUREMENT], callback: Callable[[Measurement], None]
    ) -> None: ...

    @overload
    def on(
        self,
        kind: Literal[EventKind.DISCONNECTED],
        callback: Callable[[DisconnectedEvent], None],
    ) -> None: ...

    @overload
    def on(
        self, kind: Literal[EventKind.DECODE_ERROR], callback: Callable[[DecodeError], None]
    ) -> None: ...

    def on(self, kind: EventKind, callback: Listener) -> None:
        """Subscribe callback to kind. Subscribing twice has no effect."""
        listeners = self._listeners[EventKind(kind)]
        if callback not in listeners:
            listeners.append(callback)

    def off(self, kind: EventKind, callback: Listener) -> None:
        """Unsubscribe callback from kind. Unknown callbacks are ignored."""
        listeners = self._listeners[EventKind(kind)]
        for idx, existing in enumerate(listeners):
            if existing == callback:
                del listeners[idx]
                return

    def emit(self, kind: EventKind, payload: Any) -> None:
        """Deliver payload to every current subscriber of kind."""
        kind = EventKind(kind)
        for callback in list(self._listeners[kind]):
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Error in {kind.value} listener {callback!r}")

    def listener_count(self, kind: EventKind) -> int:
        return len(self._listeners[EventKind(kind)])

    def clear(self) -> None:
        """Remove all subscribers."""
        for listeners in self._listeners.values():
            listeners.clear()
