"""Tests for src/clinical.py - staging, validation and device hints."""

import math

import pytest

from src.clinical import (
    HTNStage,
    check_device_compatibility,
    classify,
    status_messages,
    validate_reading,
)
from src.models import MeasurementStatus

# ============== TEST CLASSES ==============


class TestClassify:
    """Tests for ACC/AHA hypertension staging."""

    @pytest.mark.parametrize(
        "systolic,diastolic,expected",
        [
            (110, 70, HTNStage.NORMAL),
            (119, 79, HTNStage.NORMAL),
            (125, 75, HTNStage.ELEVATED),
            (120, 79, HTNStage.ELEVATED),
            (135, 85, HTNStage.STAGE_1),
            (130, 70, HTNStage.STAGE_1),
            (115, 80, HTNStage.STAGE_1),
            (150, 95, HTNStage.STAGE_2),
            (140, 70, HTNStage.STAGE_2),
            (120, 90, HTNStage.STAGE_2),
            (190, 125, HTNStage.CRISIS),
            (180, 70, HTNStage.CRISIS),
            (110, 120, HTNStage.CRISIS),
        ],
    )
    def test_stages(self, systolic, diastolic, expected):
        assert classify(systolic, diastolic) is expected

    def test_diastolic_alone_can_escalate(self):
        """Either value crossing a threshold is enough."""
        assert classify(118, 92) is HTNStage.STAGE_2

    def test_nan_is_normal(self):
        """NaN compares false against every threshold."""
        assert classify(math.nan, math.nan) is HTNStage.NORMAL

    def test_stage_values(self):
        assert [stage.value for stage in HTNStage] == [
            "Normal",
            "Elevated",
            "Stage 1",
            "Stage 2",
            "Crisis",
        ]


class TestValidateReading:
    """Tests for plausibility checks."""

    def test_valid_reading(self):
        result = validate_reading(120, 80, 72)

        assert result.is_valid is True
        assert result.errors == []

    def test_heart_rate_optional(self):
        assert validate_reading(120, 80).is_valid is True

    @pytest.mark.parametrize("systolic", [None, 0, math.nan])
    def test_systolic_required(self, systolic):
        result = validate_reading(systolic, 80)

        assert "Systolic pressure is required" in result.errors

    @pytest.mark.parametrize("diastolic", [None, 0, math.nan])
    def test_diastolic_required(self, diastolic):
        result = validate_reading(120, diastolic)

        assert "Diastolic pressure is required" in result.errors

    @pytest.mark.parametrize("systolic", [69, 301])
    def test_systolic_range(self, systolic):
        result = validate_reading(systolic, 50)

        assert "Systolic pressure must be between 70-300 mmHg" in result.errors

    @pytest.mark.parametrize("diastolic", [39, 201])
    def test_diastolic_range(self, diastolic):
        result = validate_reading(250, diastolic)

        assert "Diastolic pressure must be between 40-200 mmHg" in result.errors

    def test_boundaries_are_inclusive(self):
        assert validate_reading(70, 40, 30).is_valid is True
        assert validate_reading(300, 200, 250).is_valid is True

    @pytest.mark.parametrize("diastolic", [120, 130])
    def test_systolic_must_exceed_diastolic(self, diastolic):
        result = validate_reading(120, diastolic)

        assert "Systolic pressure must be greater than diastolic pressure" in result.errors

    @pytest.mark.parametrize("heart_rate", [29, 251])
    def test_heart_rate_range(self, heart_rate):
        result = validate_reading(120, 80, heart_rate)

        assert result.errors == ["Heart rate must be between 30-250 bpm"]

    def test_infinite_systolic_out_of_range(self):
        result = validate_reading(math.inf, 80)

        assert "Systolic pressure must be between 70-300 mmHg" in result.errors

    def test_collects_every_error(self):
        result = validate_reading(None, None, 10)

        assert len(result.errors) == 3
        assert result.is_valid is False


class TestStatusMessages:
    """Tests for status flag messages."""

    def test_none_status(self):
        assert status_messages(None) == []

    def test_clear_status(self):
        assert status_messages(MeasurementStatus()) == []

    def test_cuff_fit_is_error(self):
        messages = status_messages(MeasurementStatus(cuff_fit_error=True))

        assert len(messages) == 1
        assert messages[0].level == "error"
        assert "Cuff fit" in messages[0].message

    def test_all_flags_in_bit_order(self):
        status = MeasurementStatus(
            body_movement_detected=True,
            cuff_fit_error=True,
            irregular_pulse_detected=True,
            pulse_rate_out_of_range=True,
            measurement_position_improper=True,
        )

        messages = status_messages(status)

        assert [m.level for m in messages] == ["warning", "error", "warning", "warning", "warning"]
        assert messages[0].message == "Body movement detected during measurement"
        assert messages[2].message == "Irregular pulse detected"
        assert messages[4].message == "Improper measurement position detected"


class TestDeviceCompatibility:
    """Tests for name-based compatibility hints."""

    @pytest.mark.parametrize(
        "name,confidence",
        [
            ("OMRON HEM-7361T", "high"),
            ("Evolv", "high"),
            ("M7 Intelli IT", "high"),
            ("BP7250", "medium"),
            ("Blood Pressure Monitor", "medium"),
            ("A&D UA-651", "medium"),
            ("Beurer BM54", "medium"),
            ("Withings BPM Connect", "medium"),
        ],
    )
    def test_known_devices(self, name, confidence):
        result = check_device_compatibility(name)

        assert result.compatible is True
        assert result.confidence == confidence
        assert result.device_type == name

    def test_unknown_device(self):
        result = check_device_compatibility("Fitness Tracker")

        assert result.compatible is True
        assert result.confidence == "low"
        assert result.device_type == "Generic BP Monitor"

    @pytest.mark.parametrize("name", [None, ""])
    def test_missing_name(self, name):
        result = check_device_compatibility(name)

        assert result.confidence == "low"
        assert result.device_type is None
