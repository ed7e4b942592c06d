"""Data models for BP Monitor Bridge."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.clinical import HTNStage, classify


class PressureUnit(str, Enum):
    """Unit the device transmitted pressures in."""

    MMHG = "mmHg"
    KPA = "kPa"


class ConnectionState(str, Enum):
    """Connection lifecycle state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class ServiceVariant(str, Enum):
    """Which GATT service the measurement characteristic was found in."""

    STANDARD = "standard"
    VENDOR = "vendor"


@dataclass(frozen=True)
class MeasurementStatus:
    """Measurement status flags (Blood Pressure Measurement, bit 4)."""

    body_movement_detected: bool = False
    cuff_fit_error: bool = False
    irregular_pulse_detected: bool = False
    pulse_rate_out_of_range: bool = False
    measurement_position_improper: bool = False

    @property
    def has_problems(self) -> bool:
        return any(
            (
                self.body_movement_detected,
                self.cuff_fit_error,
                self.irregular_pulse_detected,
                self.pulse_rate_out_of_range,
                self.measurement_position_improper,
            )
        )

    def to_dict(self) -> dict:
        return {
            "body_movement_detected": self.body_movement_detected,
            "cuff_fit_error": self.cuff_fit_error,
            "irregular_pulse_detected": self.irregular_pulse_detected,
            "pulse_rate_out_of_range": self.pulse_rate_out_of_range,
            "measurement_position_improper": self.measurement_position_improper,
        }


@dataclass(frozen=True)
class BPFeatures:
    """Capabilities advertised by the Blood Pressure Feature characteristic."""

    body_movement_detection: bool = False
    cuff_fit_detection: bool = False
    irregular_pulse_detection: bool = False
    pulse_rate_range_detection: bool = False
    measurement_position_detection: bool = False
    multiple_bond_support: bool = False
    multiple_storage_support: bool = False


@dataclass(frozen=True)
class DeviceInfo:
    """Connected device description returned by ConnectionManager.connect()."""

    name: str
    id: str
    service_variant: ServiceVariant
    features: BPFeatures | None = None


def _json_number(value: float | None) -> float | None:
    """Map non-finite values to None for JSON output."""
    if value is None or not math.isfinite(value):
        return None
    return value


def format_pressure(value: float | None) -> str:
    return "--" if value is None else f"{value:g}"


@dataclass
class Measurement:
    """Decoded Blood Pressure Measurement notification.

    Pressures are always in mmHg regardless of original_unit. They may be
    NaN, +-inf or None when the device sent an SFLOAT special value.
    """

    systolic: float | None  # mmHg
    diastolic: float | None  # mmHg
    mean_arterial_pressure: float | None  # mmHg
    original_unit: PressureUnit = PressureUnit.MMHG
    heart_rate: int | None = None  # bpm, flag bit 2
    device_timestamp: datetime | None = None  # naive device-local, flag bit 1
    user_id: int | None = None  # flag bit 3
    status: MeasurementStatus | None = None  # flag bit 4
    received_at: datetime = field(default_factory=datetime.now)

    @property
    def htn_stage(self) -> HTNStage:
        """Hypertension stage, computed on every access."""
        return classify(
            self.systolic if self.systolic is not None else math.nan,
            self.diastolic if self.diastolic is not None else math.nan,
        )

    @property
    def reading_time(self) -> datetime:
        """Device timestamp when available, otherwise host receive time."""
        return self.device_timestamp or self.received_at

    def to_api_format(self, member_id: int | str) -> dict:
        """Convert to the reading payload accepted by the REST API.

        Args:
            member_id: Member the reading belongs to

        Returns:
            Dictionary with memberId, systolic, diastolic, heartRate, readingDate
        """
        if not member_id:
            raise ValueError("member_id is required")
        for name, value in (("systolic", self.systolic), ("diastolic", self.diastolic)):
            if value is None or not math.isfinite(value):
                raise ValueError(f"Cannot convert non-finite {name} value {value!r}")

        return {
            "memberId": member_id,
            "systolic": int(self.systolic),  # type: ignore[arg-type]
            "diastolic": int(self.diastolic),  # type: ignore[arg-type]
            "heartRate": int(self.heart_rate) if self.heart_rate else None,
            "readingDate": self.reading_time.isoformat(),
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "systolic": _json_number(self.systolic),
            "diastolic": _json_number(self.diastolic),
            "mean_arterial_pressure": _json_number(self.mean_arterial_pressure),
            "original_unit": self.original_unit.value,
            "heart_rate": self.heart_rate,
            "device_timestamp": (
                self.device_timestamp.isoformat() if self.device_timestamp else None
            ),
            "user_id": self.user_id,
            "status": self.status.to_dict() if self.status else None,
            "received_at": self.received_at.isoformat(),
            "htn_stage": self.htn_stage.value,
        }

    def __str__(self) -> str:
        """Human-readable representation."""
        pulse = f"{self.heart_rate} bpm" if self.heart_rate is not None else "n/a"
        return (
            f"BP: {format_pressure(self.systolic)}/{format_pressure(self.diastolic)} mmHg, "
            f"Pulse: {pulse}, "
            f"Stage: {self.htn_stage.value}"
        )
