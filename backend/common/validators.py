"""
Common validators and utilities for the route compliance backend.

This module contains shared validation logic and geographic helpers used
across multiple Django apps.
"""

from datetime import datetime, timezone as dt_timezone
from math import asin, cos, radians, sin, sqrt

from django.core.validators import BaseValidator

EARTH_RADIUS_KM = 6371.0


class GPSCoordinateValidator(BaseValidator):
    """
    Validator for GPS coordinates (latitude/longitude).

    Ensures coordinates are within valid ranges:
    - Latitude: -90 to 90 degrees
    - Longitude: -180 to 180 degrees
    """

    def __init__(self, coordinate_type="latitude"):
        self.coordinate_type = coordinate_type

        if coordinate_type == "latitude":
            self.limit_value = (-90, 90)
            self.message = "Latitude must be between -90 and 90 degrees."
        elif coordinate_type == "longitude":
            self.limit_value = (-180, 180)
            self.message = "Longitude must be between -180 and 180 degrees."
        else:
            raise ValueError("coordinate_type must be 'latitude' or 'longitude'")

    def compare(self, value, limit_value):
        min_val, max_val = limit_value
        return not (min_val <= float(value) <= max_val)

    def clean(self, value):
        return float(value)


def validate_latitude(value):
    """Validate latitude coordinate."""
    validator = GPSCoordinateValidator("latitude")
    validator(value)


def validate_longitude(value):
    """Validate longitude coordinate."""
    validator = GPSCoordinateValidator("longitude")
    validator(value)


def is_valid_coordinate(latitude, longitude) -> bool:
    """Check a lat/lon pair without raising."""
    try:
        return -90 <= float(latitude) <= 90 and -180 <= float(longitude) <= 180
    except (TypeError, ValueError):
        return False


class MinutesValidator(BaseValidator):
    """
    Validator for accumulated duty minutes.

    Ensures minutes are non-negative and within a sanity limit.
    """

    def __init__(self, max_minutes=20160):
        self.limit_value = max_minutes
        self.message = f"Minutes must be between 0 and {max_minutes}."

    def compare(self, value, limit_value):
        try:
            minutes = float(value)
            return not (0 <= minutes <= limit_value)
        except (ValueError, TypeError):
            return True


def validate_accumulated_minutes(value):
    """Validate an accumulator value (two weeks of minutes at most)."""
    validator = MinutesValidator()
    validator(value)


def calculate_distance_km(lat1, lon1, lat2, lon2):
    """
    Calculate the great circle distance between two points
    on the earth (specified in decimal degrees).

    Returns distance in kilometers.
    """
    lon1, lat1, lon2, lat2 = map(radians, [lon1, lat1, lon2, lat2])

    # Haversine formula
    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(a))

    return c * EARTH_RADIUS_KM


def round_coordinate(value, precision=2):
    """Round a coordinate for use in cache keys."""
    return round(float(value), precision)


def hour_bucket(moment: datetime) -> str:
    """
    Truncate a datetime to its UTC hour, formatted for cache keys.

    Naive datetimes are taken to be UTC already.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(dt_timezone.utc)
    return moment.replace(minute=0, second=0, microsecond=0).strftime("%Y%m%d%H")


def clamp(value, lower=0, upper=100):
    """Clamp a number into [lower, upper]."""
    return max(lower, min(upper, value))


def format_duration(minutes):
    """
    Format a duration in minutes as "Xh Ymin" (or "Ymin" under an hour).
    """
    total = int(round(minutes))
    hours, mins = divmod(total, 60)
    if hours > 0:
        return f"{hours}h {mins}min"
    return f"{mins}min"
