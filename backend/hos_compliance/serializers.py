"""
HOS Compliance API Serializers.

Provides serialization and validation for the compliance API endpoints:
driver duty states, status transitions, trip simulations and full route
analyses. Validated data is turned into the immutable value objects the
service layer works with.
"""

from django.utils import timezone
from rest_framework import serializers

from common.validators import validate_accumulated_minutes
from risk_analysis.hazards import CargoFlag
from risk_analysis.serializers import (
    HazardObservationSerializer,
    UpperCaseChoiceField,
    VehicleProfileSerializer,
)
from routes.serializers import RoutePointSerializer, build_route_profile
from routes.services.route_analyzer import RouteAnalysisRequest

from .duty_state import DutyEvent, DutyState, DutyStatus


class DutyStateSerializer(serializers.Serializer):
    """
    Serializer for a driver's duty state snapshot.

    Accumulated minutes must be ordered:
    continuous <= daily <= weekly <= two_week.
    """

    status = UpperCaseChoiceField(choices=DutyStatus.choices, default=DutyStatus.OFF_DUTY)
    status_start_time = serializers.DateTimeField(
        help_text="When the current duty status started"
    )
    continuous_driving_minutes = serializers.FloatField(
        default=0, validators=[validate_accumulated_minutes],
        help_text="Driving minutes since the last qualifying break"
    )
    daily_driving_minutes = serializers.FloatField(
        default=0, validators=[validate_accumulated_minutes],
        help_text="Driving minutes since the last daily rest"
    )
    weekly_driving_minutes = serializers.FloatField(
        default=0, validators=[validate_accumulated_minutes],
        help_text="Driving minutes since the last weekly rest"
    )
    two_week_driving_minutes = serializers.FloatField(
        default=0, validators=[validate_accumulated_minutes],
        help_text="Driving minutes over the current two-week window"
    )

    def validate(self, data):
        """Cross-field validation of accumulator ordering."""
        ordered = [
            "continuous_driving_minutes",
            "daily_driving_minutes",
            "weekly_driving_minutes",
            "two_week_driving_minutes",
        ]
        for shorter, longer in zip(ordered, ordered[1:]):
            if data.get(shorter, 0) > data.get(longer, 0):
                raise serializers.ValidationError({
                    shorter: f"{shorter} cannot exceed {longer}"
                })
        return data

    @staticmethod
    def build_state(data) -> DutyState:
        return DutyState(
            status=DutyStatus(data.get("status", DutyStatus.OFF_DUTY)),
            status_start_time=data["status_start_time"],
            continuous_driving_minutes=data.get("continuous_driving_minutes", 0.0),
            daily_driving_minutes=data.get("daily_driving_minutes", 0.0),
            weekly_driving_minutes=data.get("weekly_driving_minutes", 0.0),
            two_week_driving_minutes=data.get("two_week_driving_minutes", 0.0),
        )


class DutyStatusTransitionSerializer(serializers.Serializer):
    """
    Serializer for duty status change requests.

    Applies `status` at time `at` to the given driver state.
    """

    state = DutyStateSerializer()
    status = UpperCaseChoiceField(choices=DutyStatus.choices)
    at = serializers.DateTimeField(help_text="When the new status starts")

    def build_event(self) -> DutyEvent:
        return DutyEvent(
            status=DutyStatus(self.validated_data["status"]),
            at=self.validated_data["at"],
        )

    def build_state(self) -> DutyState:
        return DutyStateSerializer.build_state(self.validated_data["state"])


class TripSimulationRequestSerializer(serializers.Serializer):
    """
    Serializer for trip simulation requests.

    Without a driver state the driver starts fully rested at departure;
    without a departure time the trip starts when the driver's current
    status started (or now).
    """

    points = RoutePointSerializer(many=True, allow_empty=False)
    driver_state = DutyStateSerializer(required=False)
    departure_time = serializers.DateTimeField(required=False)

    def validate(self, data):
        data["profile"] = build_route_profile(data["points"])

        state_data = data.get("driver_state")
        departure = data.get("departure_time")
        if state_data is None:
            data["state"] = DutyState.fresh(departure or timezone.now())
        else:
            data["state"] = DutyStateSerializer.build_state(state_data)
            if departure is not None and departure < data["state"].status_start_time:
                raise serializers.ValidationError({
                    "departure_time": "Departure cannot precede the driver's current status start"
                })
        return data


class RouteAnalysisRequestSerializer(TripSimulationRequestSerializer):
    """
    Serializer for full route analysis requests.

    `segment_hazards` is index aligned with the route segments; missing
    entries are filled from the weather and road condition services when
    `fetch_hazards` is true.
    """

    segment_hazards = HazardObservationSerializer(many=True, required=False)
    cargo_flags = serializers.ListField(
        child=UpperCaseChoiceField(choices=CargoFlag.choices),
        required=False,
        default=list,
    )
    vehicle = VehicleProfileSerializer(required=False, allow_null=True)
    fetch_hazards = serializers.BooleanField(default=True)
    resolve_rest_stops = serializers.BooleanField(default=True)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=100)

    def build_request(self) -> RouteAnalysisRequest:
        return self.request_from(self.validated_data)

    @staticmethod
    def request_from(data) -> RouteAnalysisRequest:
        """Build the service request from validated data."""
        return RouteAnalysisRequest(
            profile=data["profile"],
            driver_state=data["state"],
            departure_time=data.get("departure_time"),
            segment_hazards=tuple(
                HazardObservationSerializer.build_observation(item)
                for item in data.get("segment_hazards") or []
            ),
            cargo_flags=frozenset(data.get("cargo_flags") or []),
            vehicle=VehicleProfileSerializer.build_vehicle(data.get("vehicle")),
            fetch_hazards=data.get("fetch_hazards", True),
            resolve_rest_stops=data.get("resolve_rest_stops", True),
            reference=data.get("reference") or None,
        )


class BatchRouteAnalysisRequestSerializer(serializers.Serializer):
    """Serializer for concurrent analysis of independent routes."""

    routes = RouteAnalysisRequestSerializer(many=True, allow_empty=False)
    timeout_seconds = serializers.FloatField(
        required=False, min_value=0.1, max_value=600,
        help_text="Time budget per analysis in seconds"
    )
