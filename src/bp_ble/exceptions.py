"""Exceptions raised by the blood pressure BLE core."""


class BloodPressureBLEError(Exception):
    """Base class for all blood pressure BLE errors."""


class NotSupportedError(BloodPressureBLEError):
    """No Bluetooth transport is available on this host."""


class UserCancelledError(BloodPressureBLEError):
    """The user dismissed the device chooser."""


class ConnectionFailedError(BloodPressureBLEError):
    """GATT-level failure while connecting or discovering services."""


class AlreadyConnectedError(ConnectionFailedError):
    """connect() was called while a connection is active or in progress."""


class NotificationsUnsupportedError(BloodPressureBLEError):
    """Measurement characteristic supports neither notify nor indicate."""


class DecodeError(BloodPressureBLEError, ValueError):
    """Measurement payload is shorter than its flags demand or malformed."""
