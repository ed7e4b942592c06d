"""Measurement session: the consumer side of the connection manager.

Keeps the last few readings, enriches each one with its clinical
interpretation and optionally reconnects after the link drops.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from src.bp_ble.client import ConnectionManager
from src.bp_ble.events import DisconnectedEvent, EventKind
from src.bp_ble.exceptions import DecodeError, NotSupportedError, UserCancelledError
from src.bp_ble.reconnect import DEFAULT_RECONNECT_DELAY, ReconnectionPolicy
from src.clinical import (
    HTNStage,
    StatusMessage,
    ValidationResult,
    status_messages,
    validate_reading,
)
from src.models import DeviceInfo, Measurement

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 10


@dataclass
class SessionReading:
    """A measurement together with its interpretation."""

    measurement: Measurement
    htn_stage: HTNStage
    validation: ValidationResult
    messages: list[StatusMessage] = field(default_factory=list)
    received_at: datetime = field(default_factory=datetime.now)

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    @classmethod
    def from_measurement(cls, measurement: Measurement) -> SessionReading:
        return cls(
            measurement=measurement,
            htn_stage=measurement.htn_stage,
            validation=validate_reading(
                measurement.systolic, measurement.diastolic, measurement.heart_rate
            ),
            messages=status_messages(measurement.status),
            received_at=measurement.received_at,
        )


class MeasurementSession:
    """Observes a ConnectionManager and tracks recent readings."""

    def __init__(
        self,
        manager: ConnectionManager,
        history_size: int = DEFAULT_HISTORY_SIZE,
        on_measurement: Callable[[SessionReading], None] | None = None,
        on_connect: Callable[[DeviceInfo], None] | None = None,
        on_disconnect: Callable[[DisconnectedEvent], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        auto_reconnect: bool = False,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ):
        """Initialize session and subscribe to the manager's events.

        Args:
            manager: Connection manager to observe
            history_size: Number of readings kept, newest first
            on_measurement: Called with every enriched reading
            on_connect: Called after every successful connect, including auto-reconnects
            on_disconnect: Called on every disconnect, requested or not
            on_error: Called with connect/disconnect/decode failures, including
                failed auto-reconnects
            auto_reconnect: Reconnect once after an unexpected disconnect
            reconnect_delay: Seconds before the reconnect attempt
        """
        self.manager = manager
        self.history_size = history_size
        self.on_measurement = on_measurement
        self.on_connect = on_connect
        self.on_disconnect = on_disconnect
        self.on_error = on_error

        self.history: list[SessionReading] = []
        self.last_reading: SessionReading | None = None
        self.device: DeviceInfo | None = None
        self.error: str | None = None
        self._connecting = False

        self._reconnect: ReconnectionPolicy | None = None
        if auto_reconnect:
            self._reconnect = ReconnectionPolicy(
                manager, delay=reconnect_delay, connect=self.connect
            )
            self._reconnect.start()

        manager.hub.on(EventKind.MEASUREMENT, self._handle_measurement)
        manager.hub.on(EventKind.DISCONNECTED, self._handle_disconnection)
        manager.hub.on(EventKind.DECODE_ERROR, self._handle_decode_error)

    @property
    def status(self) -> str:
        """One of: unsupported, connecting, connected, disconnected."""
        if not self.manager.is_supported:
            return "unsupported"
        if self._connecting:
            return "connecting"
        if self.manager.is_connected:
            return "connected"
        return "disconnected"

    async def connect(self) -> bool:
        """Connect through the manager.

        Returns:
            True if connected; on failure error holds a user-facing message
        """
        self._connecting = True
        self.error = None
        try:
            self.device = await self.manager.connect()
        except Exception as e:
            if isinstance(e, UserCancelledError):
                self.error = "Connection cancelled"
            elif isinstance(e, NotSupportedError):
                self.error = "Bluetooth is not supported"
            else:
                logger.error(f"Failed to connect: {e}")
                self.error = "Failed to connect to device"
            self._notify_error(e)
            return False
        finally:
            self._connecting = False

        if self.on_connect:
            self.on_connect(self.device)
        return True

    async def disconnect(self) -> bool:
        """Disconnect through the manager."""
        try:
            await self.manager.disconnect()
        except Exception as e:
            logger.error(f"Failed to disconnect: {e}")
            self.error = "Failed to disconnect from device"
            self._notify_error(e)
            return False

        self.error = None
        return True

    def clear_history(self) -> None:
        self.history = []
        self.last_reading = None

    def format_for_api(self, reading: SessionReading | Measurement, member_id: int | str) -> dict:
        """Convert a reading to the REST API payload."""
        measurement = reading.measurement if isinstance(reading, SessionReading) else reading
        return measurement.to_api_format(member_id)

    def close(self) -> None:
        """Unsubscribe from the manager and stop auto-reconnect."""
        self.manager.hub.off(EventKind.MEASUREMENT, self._handle_measurement)
        self.manager.hub.off(EventKind.DISCONNECTED, self._handle_disconnection)
        self.manager.hub.off(EventKind.DECODE_ERROR, self._handle_decode_error)
        if self._reconnect is not None:
            self._reconnect.stop()

    def _notify_error(self, error: Exception) -> None:
        if self.on_error:
            self.on_error(error)

    def _handle_measurement(self, measurement: Measurement) -> None:
        reading = SessionReading.from_measurement(measurement)
        if not reading.is_valid:
            logger.warning(f"Implausible reading: {', '.join(reading.validation.errors)}")

        self.last_reading = reading
        self.history = [reading, *self.history][: self.history_size]

        if self.on_measurement:
            self.on_measurement(reading)

    def _handle_disconnection(self, event: DisconnectedEvent) -> None:
        logger.info(f"Device disconnected (unexpected={event.unexpected})")
        self.device = None
        if self.on_disconnect:
            self.on_disconnect(event)

    def _handle_decode_error(self, error: DecodeError) -> None:
        self.error = "Received an unreadable measurement"
        self._notify_error(error)
