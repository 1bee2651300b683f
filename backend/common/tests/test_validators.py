"""
Tests for shared validators and geographic helpers.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.core.exceptions import ValidationError

from common.exceptions import ComplianceViolation, RouteValidationError
from common.tests.factories import DEPARTURE, driver_state
from common.validators import (
    calculate_distance_km,
    clamp,
    format_duration,
    hour_bucket,
    is_valid_coordinate,
    validate_accumulated_minutes,
    validate_latitude,
    validate_longitude,
)


class TestCoordinateValidation:
    @pytest.mark.parametrize("value", [-90, 0, 45.5, 90])
    def test_valid_latitude(self, value):
        validate_latitude(value)

    @pytest.mark.parametrize("value", [-90.1, 91, 180])
    def test_invalid_latitude(self, value):
        with pytest.raises(ValidationError):
            validate_latitude(value)

    def test_invalid_longitude(self):
        with pytest.raises(ValidationError):
            validate_longitude(-180.5)

    @pytest.mark.parametrize(
        "lat, lon, expected",
        [(50, 20, True), (90, 180, True), (91, 0, False), (0, 181, False), ("x", 0, False), (None, 0, False)],
    )
    def test_is_valid_coordinate(self, lat, lon, expected):
        assert is_valid_coordinate(lat, lon) is expected


class TestMinutesValidation:
    @pytest.mark.parametrize("value", [0, 270, 20160])
    def test_accepts_range(self, value):
        validate_accumulated_minutes(value)

    @pytest.mark.parametrize("value", [-1, 20161, "abc"])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(ValidationError):
            validate_accumulated_minutes(value)


class TestHelpers:
    def test_distance_of_one_degree_latitude(self):
        assert calculate_distance_km(50, 20, 51, 20) == pytest.approx(111.19, abs=0.01)

    def test_hour_bucket(self):
        moment = datetime(2024, 1, 15, 6, 59, 59, tzinfo=dt_timezone.utc)

        assert hour_bucket(moment) == "2024011506"

    def test_hour_bucket_converts_offsets_to_utc(self):
        local = datetime(2024, 1, 15, 8, 30, tzinfo=dt_timezone(timedelta(hours=2)))

        assert hour_bucket(local) == hour_bucket(datetime(2024, 1, 15, 6, 30, tzinfo=dt_timezone.utc))
        assert hour_bucket(local) == "2024011506"

    def test_hour_bucket_treats_naive_as_utc(self):
        assert hour_bucket(datetime(2024, 1, 15, 23, 5)) == "2024011523"

    @pytest.mark.parametrize("minutes, text", [(0, "0min"), (45, "45min"), (90, "1h 30min"), (660, "11h 0min")])
    def test_format_duration(self, minutes, text):
        assert format_duration(minutes) == text

    def test_clamp(self):
        assert clamp(130) == 100
        assert clamp(-5) == 0
        assert clamp(0.5, 0, 1) == 0.5


class TestExceptions:
    def test_validation_error_payload(self):
        error = RouteValidationError("Distance decreases at point 2", field="points")

        assert error.to_dict() == {
            "error": "validation_error",
            "details": "Distance decreases at point 2",
            "field": "points",
        }

    def test_compliance_violation_warning(self):
        violation = ComplianceViolation(driver_state(daily=600), ["daily"])

        warning = violation.to_warning()

        assert str(violation) == "Driving not allowed: daily driving limit reached"
        assert warning["ceilings"] == ["daily"]
        assert warning["status"] == "OFF_DUTY"
        assert warning["status_start_time"] == DEPARTURE.isoformat()
