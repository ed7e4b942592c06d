"""Blood Pressure Measurement (0x2A35) and Feature (0x2A49) decoding.

Measurement layout (little-endian):
- Byte 0: flags
    bit 0: units (0 = mmHg, 1 = kPa)
    bit 1: time stamp present
    bit 2: pulse rate present
    bit 3: user id present
    bit 4: measurement status present
- Bytes 1-6: systolic, diastolic, mean arterial pressure (SFLOAT each)
- Optional fields in flag bit order, each shifting the ones after it:
    time stamp (7 bytes: uint16 year, month, day, hour, minute, second),
    pulse rate (SFLOAT), user id (uint8), measurement status (uint16)
"""

import logging
import math
from datetime import datetime

from src.bp_ble.exceptions import DecodeError
from src.bp_ble.sfloat import decode_sfloat
from src.models import BPFeatures, Measurement, MeasurementStatus, PressureUnit

logger = logging.getLogger(__name__)

KPA_TO_MMHG = 7.50062

FLAG_UNITS_KPA = 0x01
FLAG_TIMESTAMP = 0x02
FLAG_PULSE_RATE = 0x04
FLAG_USER_ID = 0x08
FLAG_STATUS = 0x10


class ByteReader:
    """Forward-only cursor over a byte buffer.

    Every read checks bounds and raises DecodeError instead of reading past
    the end of the buffer.
    """

    def __init__(self, data: bytes | bytearray):
        self._data = bytes(data)
        self._offset = 0

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def _take(self, size: int, field_name: str) -> bytes:
        if size > self.remaining:
            raise DecodeError(
                f"Buffer too short for {field_name}: need {size} bytes at offset "
                f"{self._offset}, buffer length {len(self._data)}"
            )
        chunk = self._data[self._offset : self._offset + size]
        self._offset += size
        return chunk

    def read_uint8(self, field_name: str = "uint8") -> int:
        return self._take(1, field_name)[0]

    def read_uint16(self, field_name: str = "uint16") -> int:
        return int.from_bytes(self._take(2, field_name), "little")

    def read_sfloat(self, field_name: str = "sfloat") -> float | None:
        return decode_sfloat(self.read_uint16(field_name))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _to_mmhg(value: float | None, unit: PressureUnit) -> float | None:
    """Convert a decoded pressure to mmHg, passing special values through."""
    if unit is PressureUnit.MMHG or value is None or not math.isfinite(value):
        return value
    return _round_half_up(value * KPA_TO_MMHG)


def parse_status(bitmap: int) -> MeasurementStatus:
    """Decode the measurement status bitmap."""
    return MeasurementStatus(
        body_movement_detected=bool(bitmap & 0x01),
        cuff_fit_error=bool(bitmap & 0x02),
        irregular_pulse_detected=bool(bitmap & 0x04),
        pulse_rate_out_of_range=bool(bitmap & 0x08),
        measurement_position_improper=bool(bitmap & 0x10),
    )


def parse_measurement(
    data: bytes | bytearray, received_at: datetime | None = None
) -> Measurement:
    """Parse a Blood Pressure Measurement characteristic value.

    Args:
        data: Raw indication payload
        received_at: Host capture time (defaults to now)

    Returns:
        Decoded measurement with pressures in mmHg

    Raises:
        DecodeError: If the buffer is shorter than the flags demand
    """
    reader = ByteReader(data)

    flags = reader.read_uint8("flags")
    unit = PressureUnit.KPA if flags & FLAG_UNITS_KPA else PressureUnit.MMHG

    systolic = _to_mmhg(reader.read_sfloat("systolic"), unit)
    diastolic = _to_mmhg(reader.read_sfloat("diastolic"), unit)
    mean_arterial_pressure = _to_mmhg(reader.read_sfloat("mean arterial pressure"), unit)

    measurement = Measurement(
        systolic=systolic,
        diastolic=diastolic,
        mean_arterial_pressure=mean_arterial_pressure,
        original_unit=unit,
        received_at=received_at or datetime.now(),
    )

    if flags & FLAG_TIMESTAMP:
        year = reader.read_uint16("timestamp year")
        month = reader.read_uint8("timestamp month")
        day = reader.read_uint8("timestamp day")
        hour = reader.read_uint8("timestamp hour")
        minute = reader.read_uint8("timestamp minute")
        second = reader.read_uint8("timestamp second")
        try:
            measurement.device_timestamp = datetime(year, month, day, hour, minute, second)
        except ValueError as e:
            raise DecodeError(
                f"Invalid device timestamp {year:04d}-{month:02d}-{day:02d} "
                f"{hour:02d}:{minute:02d}:{second:02d}: {e}"
            ) from e

    if flags & FLAG_PULSE_RATE:
        # bpm regardless of the pressure unit
        pulse = reader.read_sfloat("pulse rate")
        if pulse is None or not math.isfinite(pulse):
            logger.debug(f"Pulse rate special value {pulse!r}, treating as unavailable")
        else:
            measurement.heart_rate = _round_half_up(pulse)

    if flags & FLAG_USER_ID:
        measurement.user_id = reader.read_uint8("user id")

    if flags & FLAG_STATUS:
        measurement.status = parse_status(reader.read_uint16("measurement status"))

    if reader.remaining:
        logger.debug(f"Ignoring {reader.remaining} trailing bytes in measurement")

    return measurement


def parse_features(data: bytes | bytearray) -> BPFeatures:
    """Parse the Blood Pressure Feature characteristic (uint16 bitmap)."""
    flags = ByteReader(data).read_uint16("feature flags")
    return BPFeatures(
        body_movement_detection=bool(flags & 0x01),
        cuff_fit_detection=bool(flags & 0x02),
        irregular_pulse_detection=bool(flags & 0x04),
        pulse_rate_range_detection=bool(flags & 0x08),
        measurement_position_detection=bool(flags & 0x10),
        multiple_bond_support=bool(flags & 0x20),
        multiple_storage_support=bool(flags & 0x40),
    )
