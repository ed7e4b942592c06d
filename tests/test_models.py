"""Tests for src/models.py - Measurement and related dataclasses."""

import dataclasses
import json
import math
from datetime import datetime

import pytest

from src.clinical import HTNStage
from src.models import (
    BPFeatures,
    DeviceInfo,
    Measurement,
    MeasurementStatus,
    PressureUnit,
    ServiceVariant,
    format_pressure,
)

# ============== TEST CLASSES ==============


class TestMeasurementCreation:
    """Tests for Measurement dataclass creation."""

    def test_create_minimal(self):
        measurement = Measurement(systolic=120, diastolic=80, mean_arterial_pressure=93)

        assert measurement.original_unit is PressureUnit.MMHG
        assert measurement.heart_rate is None
        assert measurement.device_timestamp is None
        assert measurement.user_id is None
        assert measurement.status is None
        assert isinstance(measurement.received_at, datetime)

    def test_create_full(self, flagged_measurement):
        assert flagged_measurement.systolic == 165
        assert flagged_measurement.status.cuff_fit_error is True
        assert flagged_measurement.status.body_movement_detected is False


class TestHtnStage:
    """Tests for the computed hypertension stage."""

    def test_stage_from_values(self, sample_measurement, flagged_measurement):
        # 120/80 is Stage 1 because diastolic >= 80
        assert sample_measurement.htn_stage is HTNStage.STAGE_1
        assert flagged_measurement.htn_stage is HTNStage.STAGE_2

    def test_stage_recomputed_after_change(self, sample_measurement):
        sample_measurement.systolic = 185

        assert sample_measurement.htn_stage is HTNStage.CRISIS

    def test_missing_values_are_normal(self):
        measurement = Measurement(systolic=None, diastolic=None, mean_arterial_pressure=None)

        assert measurement.htn_stage is HTNStage.NORMAL


class TestReadingTime:
    """Tests for reading_time fallback."""

    def test_prefers_device_timestamp(self, sample_measurement):
        assert sample_measurement.reading_time == datetime(2025, 8, 27, 14, 30, 45)

    def test_falls_back_to_received_at(self, flagged_measurement):
        assert flagged_measurement.reading_time == datetime(2025, 8, 27, 9, 0, 0)


class TestToApiFormat:
    """Tests for Measurement.to_api_format()."""

    def test_keys_and_values(self, sample_measurement):
        payload = sample_measurement.to_api_format(member_id=42)

        assert payload == {
            "memberId": 42,
            "systolic": 120,
            "diastolic": 80,
            "heartRate": 72,
            "readingDate": "2025-08-27T14:30:45",
        }

    def test_pressures_are_int(self, sample_measurement):
        payload = sample_measurement.to_api_format("member-1")

        assert isinstance(payload["systolic"], int)
        assert isinstance(payload["diastolic"], int)

    def test_missing_heart_rate(self, sample_measurement):
        sample_measurement.heart_rate = None

        assert sample_measurement.to_api_format(1)["heartRate"] is None

    @pytest.mark.parametrize("member_id", [None, ""])
    def test_member_id_required(self, sample_measurement, member_id):
        with pytest.raises(ValueError, match="member_id"):
            sample_measurement.to_api_format(member_id)

    @pytest.mark.parametrize("systolic", [math.nan, math.inf, None])
    def test_non_finite_pressure_rejected(self, sample_measurement, systolic):
        sample_measurement.systolic = systolic

        with pytest.raises(ValueError, match="systolic"):
            sample_measurement.to_api_format(1)


class TestToDict:
    """Tests for Measurement.to_dict()."""

    def test_to_dict(self, sample_measurement):
        data = sample_measurement.to_dict()

        assert data["systolic"] == 120
        assert data["diastolic"] == 80
        assert data["mean_arterial_pressure"] == 93
        assert data["original_unit"] == "mmHg"
        assert data["heart_rate"] == 72
        assert data["device_timestamp"] == "2025-08-27T14:30:45"
        assert data["received_at"] == "2025-08-27T14:31:00"
        assert data["status"] is None
        assert data["htn_stage"] == "Stage 1"

    def test_status_serialized(self, flagged_measurement):
        status = flagged_measurement.to_dict()["status"]

        assert status["irregular_pulse_detected"] is True
        assert status["cuff_fit_error"] is True
        assert status["pulse_rate_out_of_range"] is False

    def test_special_values_become_null(self):
        measurement = Measurement(
            systolic=math.nan,
            diastolic=math.inf,
            mean_arterial_pressure=None,
            received_at=datetime(2025, 1, 1),
        )

        data = measurement.to_dict()

        assert data["systolic"] is None
        assert data["diastolic"] is None
        assert data["mean_arterial_pressure"] is None

    def test_json_serializable(self, flagged_measurement):
        json.dumps(flagged_measurement.to_dict(), allow_nan=False)


class TestStr:
    """Tests for Measurement.__str__()."""

    def test_str(self, sample_measurement):
        assert str(sample_measurement) == "BP: 120/80 mmHg, Pulse: 72 bpm, Stage: Stage 1"

    def test_str_without_pulse(self):
        measurement = Measurement(systolic=110, diastolic=70, mean_arterial_pressure=83)

        assert str(measurement) == "BP: 110/70 mmHg, Pulse: n/a, Stage: Normal"

    def test_str_with_missing_pressure(self):
        measurement = Measurement(systolic=None, diastolic=70, mean_arterial_pressure=None)

        assert str(measurement).startswith("BP: --/70 mmHg")


class TestSupportingModels:
    """Tests for MeasurementStatus, BPFeatures and DeviceInfo."""

    def test_status_has_problems(self):
        assert MeasurementStatus().has_problems is False
        assert MeasurementStatus(pulse_rate_out_of_range=True).has_problems is True

    def test_status_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            MeasurementStatus().cuff_fit_error = True

    def test_features_default_false(self):
        features = BPFeatures()

        assert not any(dataclasses.astuple(features))

    def test_device_info(self):
        info = DeviceInfo(name="BP", id="abc", service_variant=ServiceVariant.VENDOR)

        assert info.features is None
        assert info.service_variant.value == "vendor"

    @pytest.mark.parametrize(
        "value,expected",
        [(120.0, "120"), (120.5, "120.5"), (None, "--"), (math.nan, "nan")],
    )
    def test_format_pressure(self, value, expected):
        assert format_pressure(value) == expected
