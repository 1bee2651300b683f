"""
Route profile serializers.

Validation of route points and routing requests; builds RouteProfile
value objects for the service layer.
"""

from rest_framework import serializers

from common.exceptions import RouteValidationError
from common.validators import validate_latitude, validate_longitude
from routes.route_profile import RouteProfile


class RoutePointSerializer(serializers.Serializer):
    """
    Serializer for a single route profile point.

    Distance and time are cumulative from the start of the route.
    """

    distance_from_start_km = serializers.FloatField(
        min_value=0, help_text="Cumulative distance from route start in kilometers"
    )
    time_offset_minutes = serializers.FloatField(
        min_value=0, help_text="Cumulative driving time from route start in minutes"
    )
    latitude = serializers.FloatField(
        validators=[validate_latitude], help_text="Latitude in decimal degrees"
    )
    longitude = serializers.FloatField(
        validators=[validate_longitude], help_text="Longitude in decimal degrees"
    )


def build_route_profile(points) -> RouteProfile:
    """
    Build a RouteProfile from validated point dictionaries.

    Raises:
        serializers.ValidationError: If the points are not monotonic
    """
    try:
        return RouteProfile.from_dicts(points)
    except RouteValidationError as e:
        raise serializers.ValidationError({e.field or "points": str(e)})


class RouteProfileRequestSerializer(serializers.Serializer):
    """
    Serializer for routing requests.

    Locations are "lat,lng" strings or {"lat": .., "lng": ..} objects,
    at least two of them, in travel order.
    """

    locations = serializers.ListField(
        child=serializers.JSONField(),
        min_length=2,
        max_length=50,
        help_text="Ordered route locations as 'lat,lng' strings or {lat, lng} objects",
    )
