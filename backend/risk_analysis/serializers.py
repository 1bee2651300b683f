"""
Risk Analysis API Serializers.

Input validation for hazard observations and segment lists. Numeric
hazard readings are not range-checked: malformed readings (negative
visibility, negative precipitation) are accepted and contribute no risk.
"""

from rest_framework import serializers

from .hazards import CargoFlag, HazardObservation, RoadQuality, RoadSurface, TrafficLevel, VehicleProfile


class UpperCaseChoiceField(serializers.ChoiceField):
    """Choice field accepting values in any letter case."""

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = data.upper()
        return super().to_internal_value(data)


class HazardObservationSerializer(serializers.Serializer):
    """
    Serializer for one hazard observation.

    Every field is optional; missing values contribute nothing.
    """

    temperature_c = serializers.FloatField(
        required=False, allow_null=True, help_text="Air temperature in °C"
    )
    rain_mm_per_hour = serializers.FloatField(
        required=False, allow_null=True, help_text="Rain intensity in mm/h"
    )
    snow_mm_per_hour = serializers.FloatField(
        required=False, allow_null=True, help_text="Snowfall intensity in mm/h"
    )
    wind_speed_ms = serializers.FloatField(
        required=False, allow_null=True, help_text="Wind speed in m/s"
    )
    visibility_m = serializers.FloatField(
        required=False, allow_null=True, help_text="Visibility in meters"
    )
    road_quality = UpperCaseChoiceField(
        choices=RoadQuality.choices, required=False, allow_null=True
    )
    traffic_level = UpperCaseChoiceField(
        choices=TrafficLevel.choices, required=False, allow_null=True
    )
    road_surface = UpperCaseChoiceField(
        choices=RoadSurface.choices, required=False, allow_null=True
    )
    cargo_flags = serializers.ListField(
        child=UpperCaseChoiceField(choices=CargoFlag.choices),
        required=False,
        default=list,
    )
    condition = serializers.CharField(
        required=False,
        allow_null=True,
        allow_blank=True,
        help_text="Provider weather category, e.g. RAIN, SNOW, FOG, THUNDERSTORM",
    )

    @staticmethod
    def build_observation(data) -> HazardObservation:
        return HazardObservation.from_dict(data or {})


class VehicleProfileSerializer(serializers.Serializer):
    """Vehicle dimensions that change wind and road surface exposure."""

    height_m = serializers.FloatField(
        required=False, allow_null=True, min_value=0, max_value=10,
        help_text="Vehicle height in meters"
    )
    gross_weight_t = serializers.FloatField(
        required=False, allow_null=True, min_value=0, max_value=100,
        help_text="Gross vehicle weight in tonnes"
    )

    @staticmethod
    def build_vehicle(data):
        return VehicleProfile.from_dict(data)


class SegmentHazardSerializer(HazardObservationSerializer):
    """Hazards of one route segment with its position along the route."""

    start_km = serializers.FloatField(min_value=0, default=0)
    end_km = serializers.FloatField(min_value=0, default=0)

    def validate(self, data):
        if data.get("end_km", 0) < data.get("start_km", 0):
            raise serializers.ValidationError({"end_km": "Segment end must not precede its start"})
        return data


class RouteRiskRequestSerializer(serializers.Serializer):
    """
    Serializer for route risk requests.

    Cargo flags and the vehicle given at the top level apply to every
    segment.
    """

    segments = SegmentHazardSerializer(many=True, allow_empty=False)
    cargo_flags = serializers.ListField(
        child=UpperCaseChoiceField(choices=CargoFlag.choices),
        required=False,
        default=list,
    )
    vehicle = VehicleProfileSerializer(required=False, allow_null=True)
