"""Clinical interpretation of blood pressure readings.

Hypertension staging follows the ACC/AHA 2017 guideline. Thresholds are
evaluated top-down and the first match wins, so the order of the checks in
classify() is significant.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from src.models import MeasurementStatus

# Plausible measurement ranges
SYSTOLIC_RANGE = (70, 300)  # mmHg
DIASTOLIC_RANGE = (40, 200)  # mmHg
HEART_RATE_RANGE = (30, 250)  # bpm


class HTNStage(str, Enum):
    """Hypertension stage."""

    NORMAL = "Normal"
    ELEVATED = "Elevated"
    STAGE_1 = "Stage 1"
    STAGE_2 = "Stage 2"
    CRISIS = "Crisis"


def classify(systolic: float, diastolic: float) -> HTNStage:
    """Classify a reading into a hypertension stage.

    Args:
        systolic: Systolic pressure in mmHg
        diastolic: Diastolic pressure in mmHg

    Returns:
        Hypertension stage
    """
    if systolic >= 180 or diastolic >= 120:
        return HTNStage.CRISIS
    elif systolic >= 140 or diastolic >= 90:
        return HTNStage.STAGE_2
    elif systolic >= 130 or diastolic >= 80:
        return HTNStage.STAGE_1
    elif systolic >= 120 and diastolic < 80:
        return HTNStage.ELEVATED
    else:
        return HTNStage.NORMAL


@dataclass
class ValidationResult:
    """Outcome of validate_reading()."""

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _is_missing(value: float | None) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value)) or value == 0


def validate_reading(
    systolic: float | None,
    diastolic: float | None,
    heart_rate: float | None = None,
) -> ValidationResult:
    """Check a reading for physiologically plausible values.

    Args:
        systolic: Systolic pressure in mmHg
        diastolic: Diastolic pressure in mmHg
        heart_rate: Optional pulse in bpm

    Returns:
        ValidationResult listing every problem found
    """
    result = ValidationResult()

    if _is_missing(systolic):
        result.errors.append("Systolic pressure is required")
    elif not SYSTOLIC_RANGE[0] <= systolic <= SYSTOLIC_RANGE[1]:  # type: ignore[operator]
        result.errors.append(
            f"Systolic pressure must be between {SYSTOLIC_RANGE[0]}-{SYSTOLIC_RANGE[1]} mmHg"
        )

    if _is_missing(diastolic):
        result.errors.append("Diastolic pressure is required")
    elif not DIASTOLIC_RANGE[0] <= diastolic <= DIASTOLIC_RANGE[1]:  # type: ignore[operator]
        result.errors.append(
            f"Diastolic pressure must be between {DIASTOLIC_RANGE[0]}-{DIASTOLIC_RANGE[1]} mmHg"
        )

    if not _is_missing(systolic) and not _is_missing(diastolic):
        if systolic <= diastolic:  # type: ignore[operator]
            result.errors.append("Systolic pressure must be greater than diastolic pressure")

    if heart_rate is not None:
        if isinstance(heart_rate, float) and math.isnan(heart_rate):
            result.errors.append("Heart rate must be a number")
        elif not HEART_RATE_RANGE[0] <= heart_rate <= HEART_RATE_RANGE[1]:
            result.errors.append(
                f"Heart rate must be between {HEART_RATE_RANGE[0]}-{HEART_RATE_RANGE[1]} bpm"
            )

    return result


@dataclass(frozen=True)
class StatusMessage:
    """User-facing message derived from a measurement status flag."""

    level: Literal["warning", "error"]
    message: str


def status_messages(status: MeasurementStatus | None) -> list[StatusMessage]:
    """Translate measurement status flags into user-facing messages."""
    if status is None:
        return []

    messages: list[StatusMessage] = []
    if status.body_movement_detected:
        messages.append(StatusMessage("warning", "Body movement detected during measurement"))
    if status.cuff_fit_error:
        messages.append(StatusMessage("error", "Cuff fit error - please adjust cuff and retry"))
    if status.irregular_pulse_detected:
        messages.append(StatusMessage("warning", "Irregular pulse detected"))
    if status.pulse_rate_out_of_range:
        messages.append(StatusMessage("warning", "Pulse rate out of normal range"))
    if status.measurement_position_improper:
        messages.append(StatusMessage("warning", "Improper measurement position detected"))
    return messages


@dataclass(frozen=True)
class DeviceCompatibility:
    """How likely a device is to speak the standard profile."""

    compatible: bool
    confidence: Literal["high", "medium", "low"]
    device_type: str | None = None


# Known monitor name patterns, checked in order
_COMPATIBLE_DEVICES: list[tuple[re.Pattern[str], Literal["high", "medium"]]] = [
    (re.compile(r"omron", re.IGNORECASE), "high"),
    (re.compile(r"evolv", re.IGNORECASE), "high"),
    (re.compile(r"m7", re.IGNORECASE), "high"),
    (re.compile(r"intelli", re.IGNORECASE), "high"),
    (re.compile(r"bp\d+", re.IGNORECASE), "medium"),
    (re.compile(r"blood pressure", re.IGNORECASE), "medium"),
    (re.compile(r"a&d", re.IGNORECASE), "medium"),
    (re.compile(r"beurer", re.IGNORECASE), "medium"),
    (re.compile(r"withings", re.IGNORECASE), "medium"),
]


def check_device_compatibility(device_name: str | None) -> DeviceCompatibility:
    """Guess compatibility from the advertised device name.

    Unknown devices are still reported compatible since any monitor
    implementing the Blood Pressure Profile should work.
    """
    if not device_name:
        return DeviceCompatibility(compatible=True, confidence="low")

    for pattern, confidence in _COMPATIBLE_DEVICES:
        if pattern.search(device_name):
            return DeviceCompatibility(
                compatible=True, confidence=confidence, device_type=device_name
            )

    return DeviceCompatibility(
        compatible=True, confidence="low", device_type="Generic BP Monitor"
    )
