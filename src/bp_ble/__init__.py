"""Blood Pressure Profile BLE module.

Decodes IEEE 11073 blood pressure measurements and manages the connection
to standard Bluetooth blood pressure monitors.
"""

from src.bp_ble.client import ConnectionManager
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
from src.bp_ble.reconnect import ReconnectionPolicy
from src.bp_ble.sfloat import decode_sfloat, encode_sfloat

__all__ = [
    "AlreadyConnectedError",
    "BloodPressureBLEError",
    "ConnectionFailedError",
    "ConnectionManager",
    "DecodeError",
    "DisconnectedEvent",
    "EventHub",
    "EventKind",
    "NotSupportedError",
    "NotificationsUnsupportedError",
    "ReconnectionPolicy",
    "UserCancelledError",
    "decode_sfloat",
    "encode_sfloat",
    "parse_features",
    "parse_measurement",
]
