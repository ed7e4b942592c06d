"""Bluetooth transport capability consumed by the connection manager.

The manager never talks to a Bluetooth stack directly. It drives these
abstract handles, which a host platform implements (see bleak_transport for
the bleak-based implementation). Every coroutine is awaited on its own; the
manager never issues two operations against the same device concurrently.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

# Bluetooth SIG base UUID: 0000xxxx-0000-1000-8000-00805f9b34fb
BP_SERVICE_UUID = "00001810-0000-1000-8000-00805f9b34fb"
BP_MEASUREMENT_UUID = "00002a35-0000-1000-8000-00805f9b34fb"
BP_FEATURE_UUID = "00002a49-0000-1000-8000-00805f9b34fb"

# OMRON vendor service used by some newer models
VENDOR_SERVICE_UUID = "0000fe4a-0000-1000-8000-00805f9b34fb"

DisconnectListener = Callable[[], None]
ValueListener = Callable[[bytes], None]


@dataclass(frozen=True)
class CharacteristicProperties:
    """Subset of GATT characteristic properties the manager cares about."""

    read: bool = False
    notify: bool = False
    indicate: bool = False


class GattCharacteristic(ABC):
    """A remote GATT characteristic."""

    @property
    @abstractmethod
    def uuid(self) -> str:
        raise NotImplementedError

    @property
    @abstractmethod
    def properties(self) -> CharacteristicProperties:
        raise NotImplementedError

    @abstractmethod
    async def read_value(self) -> bytes:
        raise NotImplementedError

    @abstractmethod
    async def start_notifications(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def stop_notifications(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_value_listener(self, listener: ValueListener) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_value_listener(self, listener: ValueListener) -> None:
        raise NotImplementedError


class GattService(ABC):
    """A remote primary service."""

    @abstractmethod
    async def get_characteristic(self, uuid: str) -> GattCharacteristic:
        """Look up a characteristic, raising if the service lacks it."""
        raise NotImplementedError


class GattServer(ABC):
    """GATT server of a connected device."""

    @abstractmethod
    async def get_primary_service(self, uuid: str) -> GattService:
        """Look up a primary service, raising if the device lacks it."""
        raise NotImplementedError


class DeviceHandle(ABC):
    """A selected (not necessarily connected) peripheral."""

    @property
    @abstractmethod
    def name(self) -> str | None:
        raise NotImplementedError

    @property
    @abstractmethod
    def id(self) -> str:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def connect_gatt(self) -> GattServer:
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_disconnect_listener(self, listener: DisconnectListener) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_disconnect_listener(self, listener: DisconnectListener) -> None:
        raise NotImplementedError


class BluetoothTransport(ABC):
    """Entry point of the platform Bluetooth capability."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether Bluetooth can be used on this host at all."""
        raise NotImplementedError

    @abstractmethod
    async def request_device(self, service_uuids: list[str]) -> DeviceHandle | None:
        """Let the user pick a device advertising one of service_uuids.

        Returns:
            Selected device, or None if the user dismissed the chooser
        """
        raise NotImplementedError
