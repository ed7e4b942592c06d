"""MQTT publisher for blood pressure measurements.

This module forwards decoded measurements to an MQTT broker for integration
with home automation systems (Home Assistant, OpenHAB, etc.).
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion
from paho.mqtt.properties import Properties
from paho.mqtt.reasoncodes import ReasonCode

from src.bp_ble.events import DisconnectedEvent, EventHub, EventKind
from src.models import Measurement

logger = logging.getLogger(__name__)

# Default MQTT settings
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1883
DEFAULT_BASE_TOPIC = "bp_monitor"


class MQTTPublisher:
    """Publish blood pressure measurements to an MQTT broker.

    Features:
    - JSON payload format
    - QoS 1 for reliable delivery
    - Retained messages for last-known-value
    - Subscribes to an EventHub to publish measurements as they arrive
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        username: str | None = None,
        password: str | None = None,
        base_topic: str = DEFAULT_BASE_TOPIC,
        client_id: str | None = None,
    ):
        """Initialize MQTT publisher.

        Args:
            host: MQTT broker hostname/IP
            port: MQTT broker port
            username: Optional authentication username
            password: Optional authentication password
            base_topic: Base topic for all messages
            client_id: Optional client ID (auto-generated if not provided)
        """
        self.host = host
        self.port = port
        self.base_topic = base_topic.rstrip("/")
        self._username = username
        self._password = password

        client_id = client_id or f"bp-monitor-bridge-{datetime.now().timestamp():.0f}"
        self._client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=client_id,
        )

        if username and password:
            self._client.username_pw_set(username, password)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_publish = self._on_publish

        self._connected = False
        self._last_error: str | None = None

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: mqtt.ConnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        """Callback when connected to broker."""
        if reason_code == mqtt.CONNACK_ACCEPTED or reason_code.is_failure is False:
            self._connected = True
            self._last_error = None
            logger.info(f"Connected to MQTT broker {self.host}:{self.port}")
        else:
            self._connected = False
            self._last_error = str(reason_code)
            logger.error(f"MQTT connection failed: {reason_code}")

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: mqtt.DisconnectFlags,
        reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        """Callback when disconnected from broker."""
        self._connected = False
        if reason_code != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"MQTT disconnected unexpectedly: {reason_code}")
        else:
            logger.info("Disconnected from MQTT broker")

    def _on_publish(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        mid: int,
        _reason_code: ReasonCode,
        _properties: Properties | None = None,
    ) -> None:
        logger.debug(f"MQTT message {mid} published")

    def connect(self, timeout: float = 10.0) -> bool:
        """Connect to MQTT broker.

        Args:
            timeout: Connection timeout in seconds

        Returns:
            True if connection successful
        """
        try:
            self._client.connect(self.host, self.port, keepalive=60)
            self._client.loop_start()

            start = time.time()
            while not self._connected and (time.time() - start) < timeout:
                time.sleep(0.1)

            if not self._connected:
                logger.error(
                    f"MQTT connection timeout after {timeout}s. Last error: {self._last_error}"
                )
                return False

            return True

        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            self._last_error = str(e)
            return False

    def disconnect(self) -> None:
        """Disconnect from MQTT broker."""
        try:
            self._client.loop_stop()
            self._client.disconnect()
        except Exception as e:
            logger.warning(f"Error during MQTT disconnect: {e}")
        finally:
            self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def measurement_topic(self) -> str:
        return f"{self.base_topic}/measurement"

    @property
    def status_topic(self) -> str:
        return f"{self.base_topic}/status"

    def _build_payload(self, measurement: Measurement, extra_data: dict | None = None) -> dict:
        """Build JSON payload for a measurement message."""
        payload = measurement.to_dict()
        payload["published_at"] = datetime.now().isoformat()
        if extra_data:
            payload.update(extra_data)
        return payload

    def publish_measurement(
        self,
        measurement: Measurement,
        retain: bool = True,
        qos: int = 1,
        extra_data: dict | None = None,
    ) -> bool:
        """Publish a measurement to MQTT.

        Args:
            measurement: Decoded measurement
            retain: Whether to retain message on broker
            qos: Quality of Service level (0, 1, or 2)
            extra_data: Optional extra fields for payload

        Returns:
            True if publish successful
        """
        if not self._connected:
            logger.error("Not connected to MQTT broker")
            return False

        payload = self._build_payload(measurement, extra_data)

        try:
            result = self._client.publish(
                self.measurement_topic,
                json.dumps(payload),
                qos=qos,
                retain=retain,
            )
        except Exception as e:
            logger.error(f"MQTT publish error: {e}")
            return False

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Failed to publish: {mqtt.error_string(result.rc)}")
            return False

        logger.info(f"Published to {self.measurement_topic}: {measurement}")
        return True

    def publish_status(
        self,
        status: str,
        message: str | None = None,
        retain: bool = True,
    ) -> bool:
        """Publish bridge status message.

        Args:
            status: Status string (e.g., "online", "connected", "disconnected")
            message: Optional status message
            retain: Whether to retain message

        Returns:
            True if publish successful
        """
        if not self._connected:
            return False

        payload = {
            "status": status,
            "message": message,
            "timestamp": datetime.now().isoformat(),
        }

        try:
            result = self._client.publish(
                self.status_topic,
                json.dumps(payload),
                qos=1,
                retain=retain,
            )
            return bool(result.rc == mqtt.MQTT_ERR_SUCCESS)
        except Exception as e:
            logger.error(f"Failed to publish status: {e}")
            return False

    def attach(self, hub: EventHub) -> None:
        """Publish every measurement and disconnect seen on hub."""
        hub.on(EventKind.MEASUREMENT, self._on_measurement_event)
        hub.on(EventKind.DISCONNECTED, self._on_disconnected_event)

    def detach(self, hub: EventHub) -> None:
        hub.off(EventKind.MEASUREMENT, self._on_measurement_event)
        hub.off(EventKind.DISCONNECTED, self._on_disconnected_event)

    def _on_measurement_event(self, measurement: Measurement) -> None:
        self.publish_measurement(measurement)

    def _on_disconnected_event(self, event: DisconnectedEvent) -> None:
        reason = "unexpected" if event.unexpected else "requested"
        self.publish_status("disconnected", f"Monitor disconnected ({reason})")


def create_mqtt_publisher(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    username: str | None = None,
    password: str | None = None,
    base_topic: str = DEFAULT_BASE_TOPIC,
) -> MQTTPublisher:
    """Factory function to create and connect an MQTTPublisher.

    Raises:
        ConnectionError: If connection fails
    """
    publisher = MQTTPublisher(
        host=host,
        port=port,
        username=username,
        password=password,
        base_topic=base_topic,
    )

    if not publisher.connect():
        raise ConnectionError(f"Failed to connect to MQTT broker at {host}:{port}")

    return publisher
