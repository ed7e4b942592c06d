"""Bluetooth transport implemented with bleak.

Maps the abstract transport capability onto BleakScanner/BleakClient so the
connection manager can drive real hardware.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.service import BleakGATTService

from src.bp_ble.transport import (
    BluetoothTransport,
    CharacteristicProperties,
    DeviceHandle,
    DisconnectListener,
    GattCharacteristic,
    GattServer,
    GattService,
    ValueListener,
)
from src.clinical import check_device_compatibility

logger = logging.getLogger(__name__)

# Platforms bleak ships a backend for
SUPPORTED_PLATFORMS = ("linux", "darwin", "win32")

DeviceChooser = Callable[[list[BLEDevice]], BLEDevice | None]


def choose_strongest(devices: list[BLEDevice]) -> BLEDevice | None:
    """Default chooser: candidates arrive sorted by RSSI, take the first."""
    return devices[0] if devices else None


async def scan_devices(timeout: float = 10.0) -> list[tuple[BLEDevice, list[str]]]:
    """Scan for nearby BLE devices.

    Args:
        timeout: Scan timeout in seconds

    Returns:
        (device, advertised service UUIDs) pairs sorted by signal strength
    """
    logger.info(f"Scanning for BLE devices ({timeout}s)...")
    devices = await BleakScanner.discover(timeout=timeout, return_adv=True)

    # Sort by signal strength (RSSI)
    sorted_devices = sorted(
        devices.items(),
        key=lambda x: x[1][1].rssi,
        reverse=True,
    )

    result = []
    for mac, (device, adv_data) in sorted_devices:
        logger.debug(f"Found: {mac} - {device.name} (RSSI: {adv_data.rssi})")
        result.append((device, [uuid.lower() for uuid in adv_data.service_uuids]))

    logger.info(f"Found {len(result)} devices")
    return result


class BleakCharacteristic(GattCharacteristic):
    """GATT characteristic backed by a connected BleakClient."""

    def __init__(self, client: BleakClient, characteristic: BleakGATTCharacteristic):
        self._client = client
        self._characteristic = characteristic
        self._listeners: list[ValueListener] = []

    @property
    def uuid(self) -> str:
        return self._characteristic.uuid

    @property
    def properties(self) -> CharacteristicProperties:
        props = self._characteristic.properties
        return CharacteristicProperties(
            read="read" in props,
            notify="notify" in props,
            indicate="indicate" in props,
        )

    async def read_value(self) -> bytes:
        return bytes(await self._client.read_gatt_char(self._characteristic))

    async def start_notifications(self) -> None:
        await self._client.start_notify(self._characteristic, self._on_notify)

    async def stop_notifications(self) -> None:
        await self._client.stop_notify(self._characteristic)

    def add_value_listener(self, listener: ValueListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_value_listener(self, listener: ValueListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _on_notify(self, _sender: BleakGATTCharacteristic, data: bytearray) -> None:
        logger.debug(f"RX {self.uuid} < {bytes(data).hex()}")
        for listener in list(self._listeners):
            listener(bytes(data))


class BleakService(GattService):
    def __init__(self, client: BleakClient, service: BleakGATTService):
        self._client = client
        self._service = service

    async def get_characteristic(self, uuid: str) -> GattCharacteristic:
        characteristic = self._service.get_characteristic(uuid)
        if characteristic is None:
            raise LookupError(f"Characteristic {uuid} not found in service {self._service.uuid}")
        return BleakCharacteristic(self._client, characteristic)


class BleakServer(GattServer):
    def __init__(self, client: BleakClient):
        self._client = client

    async def get_primary_service(self, uuid: str) -> GattService:
        service = self._client.services.get_service(uuid)
        if service is None:
            raise LookupError(f"Service {uuid} not found")
        return BleakService(self._client, service)


class BleakDeviceHandle(DeviceHandle):
    """Scanned device plus the BleakClient created on connect."""

    def __init__(self, device: BLEDevice, connect_timeout: float = 15.0):
        self._device = device
        self._connect_timeout = connect_timeout
        self._client: BleakClient | None = None
        self._disconnect_listeners: list[DisconnectListener] = []

    @property
    def name(self) -> str | None:
        return self._device.name

    @property
    def id(self) -> str:
        return self._device.address

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def connect_gatt(self) -> GattServer:
        self._client = BleakClient(
            self._device,
            disconnected_callback=self._on_disconnected,
            timeout=self._connect_timeout,
        )
        await self._client.connect()
        return BleakServer(self._client)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.disconnect()

    def add_disconnect_listener(self, listener: DisconnectListener) -> None:
        if listener not in self._disconnect_listeners:
            self._disconnect_listeners.append(listener)

    def remove_disconnect_listener(self, listener: DisconnectListener) -> None:
        if listener in self._disconnect_listeners:
            self._disconnect_listeners.remove(listener)

    def _on_disconnected(self, _client: BleakClient) -> None:
        logger.debug(f"Link to {self.id} dropped")
        for listener in list(self._disconnect_listeners):
            listener()


class BleakTransport(BluetoothTransport):
    """Transport that scans with bleak and lets a chooser pick the device."""

    def __init__(
        self,
        scan_timeout: float = 10.0,
        connect_timeout: float = 15.0,
        chooser: DeviceChooser = choose_strongest,
    ):
        """Initialize bleak transport.

        Args:
            scan_timeout: Seconds to scan before offering candidates
            connect_timeout: Seconds bleak may spend establishing the link
            chooser: Picks one of the candidates, or None to cancel. Called in
                a worker thread, so it may block (e.g. on input())
        """
        self.scan_timeout = scan_timeout
        self.connect_timeout = connect_timeout
        self.chooser = chooser

    def is_available(self) -> bool:
        return sys.platform.startswith(SUPPORTED_PLATFORMS)

    async def request_device(self, service_uuids: list[str]) -> DeviceHandle | None:
        wanted = {uuid.lower() for uuid in service_uuids}
        candidates = []
        for device, advertised in await scan_devices(self.scan_timeout):
            # Some monitors only advertise their services once connected
            if wanted.intersection(advertised):
                candidates.append(device)
            elif check_device_compatibility(device.name).confidence != "low":
                candidates.append(device)

        if not candidates:
            raise ConnectionError(
                "No blood pressure monitors found. Start a measurement or press the "
                "Bluetooth button on the device."
            )

        # off the loop thread: choosers may block on input()
        device = await asyncio.to_thread(self.chooser, candidates)
        if device is None:
            return None

        logger.info(f"Selected device: {device.address} - {device.name}")
        return BleakDeviceHandle(device, connect_timeout=self.connect_timeout)
