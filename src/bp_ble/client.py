"""Connection manager for Blood Pressure Profile monitors.

Owns the device, GATT server, service and characteristic handles of a single
connection. Notifications are decoded and published through an EventHub.
"""

import contextlib
import logging

from src.bp_ble.events import DisconnectedEvent, EventHub, EventKind
from src.bp_ble.exceptions import (
    AlreadyConnectedError,
    BloodPressureBLEError,
    ConnectionFailedError,
    DecodeError,
    NotificationsUnsupportedError,
    NotSupportedError,
    UserCancelledError,
)
from src.bp_ble.parser import parse_features, parse_measurement
from src.bp_ble.transport import (
    BP_FEATURE_UUID,
    BP_MEASUREMENT_UUID,
    BP_SERVICE_UUID,
    VENDOR_SERVICE_UUID,
    BluetoothTransport,
    DeviceHandle,
    GattCharacteristic,
    GattServer,
    GattService,
)
from src.models import BPFeatures, ConnectionState, DeviceInfo, ServiceVariant

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE_NAME = "Unknown Device"


class ConnectionManager:
    """Connects to a blood pressure monitor and streams its measurements.

    This class provides:
    - Device selection and GATT connection
    - Standard service discovery with a single vendor service fallback
    - Measurement indications decoded into Measurement events
    - Disconnect detection (unexpected vs. requested)
    """

    def __init__(self, transport: BluetoothTransport | None, hub: EventHub | None = None):
        """Initialize connection manager.

        Args:
            transport: Platform Bluetooth capability (None if unavailable)
            hub: Event hub to publish on (a private one is created if omitted)
        """
        self._transport = transport
        self.hub = hub or EventHub()
        self._state = ConnectionState.DISCONNECTED

        self._device: DeviceHandle | None = None
        self._server: GattServer | None = None
        self._service: GattService | None = None
        self._measurement_char: GattCharacteristic | None = None
        self._service_variant: ServiceVariant | None = None
        self._features: BPFeatures | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if a monitor is connected."""
        return (
            self._state is ConnectionState.CONNECTED
            and self._device is not None
            and self._device.is_connected
        )

    @property
    def is_supported(self) -> bool:
        return self._transport is not None and self._transport.is_available()

    @property
    def features(self) -> BPFeatures | None:
        return self._features

    @property
    def device_info(self) -> DeviceInfo | None:
        """Description of the connected device, None when disconnected."""
        if self._device is None or self._service_variant is None:
            return None
        return DeviceInfo(
            name=self._device.name or UNKNOWN_DEVICE_NAME,
            id=self._device.id,
            service_variant=self._service_variant,
            features=self._features,
        )

    async def connect(self) -> DeviceInfo:
        """Select a monitor, connect and subscribe to measurements.

        Returns:
            Connected device description

        Raises:
            NotSupportedError: No Bluetooth transport available
            AlreadyConnectedError: A connection is active or in progress
            UserCancelledError: User dismissed the device chooser
            NotificationsUnsupportedError: Device cannot push measurements
            ConnectionFailedError: GATT-level failure
        """
        if not self.is_supported or self._transport is None:
            raise NotSupportedError("Bluetooth is not supported on this host")
        if self._state is not ConnectionState.DISCONNECTED:
            raise AlreadyConnectedError(f"Cannot connect while {self._state.value}")

        self._state = ConnectionState.CONNECTING
        device: DeviceHandle | None = None
        characteristic: GattCharacteristic | None = None

        try:
            device = await self._transport.request_device([BP_SERVICE_UUID, VENDOR_SERVICE_UUID])
            if device is None:
                raise UserCancelledError("User cancelled device selection")
            self._device = device

            device.add_disconnect_listener(self._handle_disconnection)

            logger.info(f"Connecting to {device.name or UNKNOWN_DEVICE_NAME} ({device.id})...")
            server = await device.connect_gatt()
            logger.debug("GATT connection established")

            service, variant = await self._discover_service(server)

            characteristic = await service.get_characteristic(BP_MEASUREMENT_UUID)
            await self._start_notifications(characteristic)

            features = await self._read_features(service)

        except UserCancelledError:
            logger.info("Device selection cancelled by user")
            await self._abort_connect(device, characteristic)
            raise
        except BloodPressureBLEError as e:
            logger.error(f"Connection failed: {e}")
            await self._abort_connect(device, characteristic)
            raise
        except Exception as e:
            logger.error(f"Connection failed: {e}")
            await self._abort_connect(device, characteristic)
            raise ConnectionFailedError(f"Failed to connect to device: {e}") from e

        # disconnect() may have run while a GATT operation was pending
        if self._state is not ConnectionState.CONNECTING or self._device is not device:
            logger.warning("Connection closed while connecting")
            await self._release(device, characteristic)
            raise ConnectionFailedError("Connection was closed while connecting")

        self._server = server
        self._service = service
        self._service_variant = variant
        self._measurement_char = characteristic
        self._features = features
        self._state = ConnectionState.CONNECTED

        info = self.device_info
        if info is None:
            raise ConnectionFailedError("Connection state lost after connecting")
        logger.info(f"Connected to {info.name} using {info.service_variant.value} service")
        return info

    async def _discover_service(self, server: GattServer) -> tuple[GattService, ServiceVariant]:
        """Find the standard service, falling back once to the vendor service."""
        try:
            service = await server.get_primary_service(BP_SERVICE_UUID)
            logger.info("Using standard Blood Pressure service")
            return service, ServiceVariant.STANDARD
        except Exception as e:
            logger.info(f"Standard Blood Pressure service not found ({e}), trying vendor service")

        service = await server.get_primary_service(VENDOR_SERVICE_UUID)
        logger.info("Using vendor Blood Pressure service")
        return service, ServiceVariant.VENDOR

    async def _start_notifications(self, characteristic: GattCharacteristic) -> None:
        props = characteristic.properties
        if not (props.indicate or props.notify):
            raise NotificationsUnsupportedError(
                "Device does not support measurement notifications/indications"
            )

        characteristic.add_value_listener(self._handle_measurement)
        await characteristic.start_notifications()
        logger.debug("Started measurement notifications")

    async def _read_features(self, service: GattService) -> BPFeatures | None:
        """Read the optional feature characteristic. Failures are ignored."""
        try:
            feature_char = await service.get_characteristic(BP_FEATURE_UUID)
            if not feature_char.properties.read:
                return None
            features = parse_features(await feature_char.read_value())
        except Exception as e:
            logger.debug(f"Blood Pressure Feature characteristic not available: {e}")
            return None

        logger.info(f"Device features: {features}")
        return features

    async def disconnect(self) -> None:
        """Disconnect from the monitor.

        Safe to call when already disconnected. Teardown failures are logged
        and the manager always ends up DISCONNECTED.
        """
        if self._state is ConnectionState.DISCONNECTED and self._device is None:
            logger.debug("Disconnect requested but not connected")
            return

        self._state = ConnectionState.DISCONNECTING
        device = self._device
        characteristic = self._measurement_char

        if device is not None:
            device.remove_disconnect_listener(self._handle_disconnection)

        try:
            if characteristic is not None:
                if device is not None and device.is_connected:
                    try:
                        await characteristic.stop_notifications()
                    except Exception as e:
                        logger.warning(f"Error stopping notifications: {e}")
                characteristic.remove_value_listener(self._handle_measurement)

            if device is not None and device.is_connected:
                logger.info("Disconnecting...")
                try:
                    await device.disconnect()
                except Exception as e:
                    logger.warning(f"Disconnect error: {e}")
                logger.info("Disconnected")
        finally:
            self._cleanup()

        self.hub.emit(EventKind.DISCONNECTED, DisconnectedEvent(unexpected=False))

    async def _abort_connect(
        self, device: DeviceHandle | None, characteristic: GattCharacteristic | None
    ) -> None:
        """Tear down a half-open connection after a failed connect()."""
        await self._release(device, characteristic)
        if self._device is device:
            self._cleanup()

    async def _release(
        self, device: DeviceHandle | None, characteristic: GattCharacteristic | None
    ) -> None:
        """Detach from a device that never finished connecting and drop its link."""
        if characteristic is not None:
            characteristic.remove_value_listener(self._handle_measurement)
        if device is not None:
            device.remove_disconnect_listener(self._handle_disconnection)
            if device.is_connected:
                with contextlib.suppress(Exception):
                    await device.disconnect()

    def _handle_measurement(self, data: bytes) -> None:
        """Decode one indication and publish it."""
        try:
            measurement = parse_measurement(data)
        except DecodeError as e:
            logger.error(f"Could not decode measurement {bytes(data).hex()}: {e}")
            self.hub.emit(EventKind.DECODE_ERROR, e)
            return

        logger.info(f"Measurement received: {measurement}")
        self.hub.emit(EventKind.MEASUREMENT, measurement)

    def _handle_disconnection(self) -> None:
        """Called by the transport when the link drops on its own."""
        if self._state is not ConnectionState.CONNECTED:
            # connect() in progress; its next GATT operation fails and cleans up
            logger.debug(f"Link dropped while {self._state.value}")
            return

        logger.warning("Device disconnected unexpectedly")
        if self._measurement_char is not None:
            self._measurement_char.remove_value_listener(self._handle_measurement)
        self._cleanup()
        self.hub.emit(EventKind.DISCONNECTED, DisconnectedEvent(unexpected=True))

    def _cleanup(self) -> None:
        self._device = None
        self._server = None
        self._service = None
        self._measurement_char = None
        self._service_variant = None
        self._features = None
        self._state = ConnectionState.DISCONNECTED
