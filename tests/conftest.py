"""Shared pytest fixtures for bp-monitor-bridge tests."""

from __future__ import annotations

from datetime import datetime

import pytest

from src.bp_ble.client import ConnectionManager
from src.bp_ble.events import EventHub
from src.bp_ble.transport import (
    BP_FEATURE_UUID,
    BP_MEASUREMENT_UUID,
    BP_SERVICE_UUID,
    VENDOR_SERVICE_UUID,
    CharacteristicProperties,
)
from src.models import Measurement, MeasurementStatus
from tests.fakes import FakeCharacteristic, FakeDevice, FakeServer, FakeService, FakeTransport

# ============== FIXTURES ==============


@pytest.fixture
def measurement_char() -> FakeCharacteristic:
    return FakeCharacteristic(
        BP_MEASUREMENT_UUID, CharacteristicProperties(indicate=True, notify=True)
    )


@pytest.fixture
def feature_char() -> FakeCharacteristic:
    # Body movement + irregular pulse detection
    return FakeCharacteristic(BP_FEATURE_UUID, CharacteristicProperties(read=True), b"\x05\x00")


@pytest.fixture
def bp_service(measurement_char, feature_char) -> FakeService:
    return FakeService({BP_MEASUREMENT_UUID: measurement_char, BP_FEATURE_UUID: feature_char})


@pytest.fixture
def server(bp_service) -> FakeServer:
    return FakeServer({BP_SERVICE_UUID: bp_service})


@pytest.fixture
def vendor_server(bp_service) -> FakeServer:
    return FakeServer({VENDOR_SERVICE_UUID: bp_service})


@pytest.fixture
def device(server) -> FakeDevice:
    return FakeDevice(server)


@pytest.fixture
def transport(device) -> FakeTransport:
    return FakeTransport(device)


@pytest.fixture
def hub() -> EventHub:
    return EventHub()


@pytest.fixture
def manager(transport, hub) -> ConnectionManager:
    return ConnectionManager(transport, hub)


@pytest.fixture
def sample_measurement() -> Measurement:
    """Create a sample measurement for testing."""
    return Measurement(
        systolic=120.0,
        diastolic=80.0,
        mean_arterial_pressure=93.0,
        heart_rate=72,
        device_timestamp=datetime(2025, 8, 27, 14, 30, 45),
        received_at=datetime(2025, 8, 27, 14, 31, 0),
    )


@pytest.fixture
def flagged_measurement() -> Measurement:
    """Create a high reading with status problems."""
    return Measurement(
        systolic=165.0,
        diastolic=95.0,
        mean_arterial_pressure=118.0,
        heart_rate=88,
        status=MeasurementStatus(irregular_pulse_detected=True, cuff_fit_error=True),
        received_at=datetime(2025, 8, 27, 9, 0, 0),
    )
