"""
Risk Analysis API Views.

Stateless scoring endpoints: weather risk for a single observation and
combined risk for a list of route segments.
"""

import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .hazards import HazardObservation
from .serializers import HazardObservationSerializer, RouteRiskRequestSerializer, VehicleProfileSerializer
from .services.risk_aggregator import RiskAggregator

logger = logging.getLogger(__name__)


class RiskAssessmentViewSet(viewsets.ViewSet):
    """
    ViewSet for hazard risk scoring.

    Provides endpoints for scoring hazards without any external lookup.
    """

    permission_classes = [AllowAny]

    @action(detail=False, methods=["post"])
    def weather(self, request):
        """
        Score the weather hazards of one observation.

        Request Body:
            temperature_c, rain_mm_per_hour, snow_mm_per_hour,
            wind_speed_ms, visibility_m, condition (all optional)

        Returns the score, its per-category contributions and typed hazard
        warnings.
        """
        serializer = HazardObservationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": "Invalid input data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        aggregator = RiskAggregator()
        observation = serializer.build_observation(serializer.validated_data)
        score = aggregator.score_weather(observation)

        return Response(
            {
                **score.to_dict(),
                "contributions": aggregator.weather_points(observation),
                "hazard_warnings": [
                    warning.to_dict() for warning in aggregator.hazard_warnings(observation)
                ],
            }
        )

    @action(detail=False, methods=["post"])
    def route(self, request):
        """
        Score a route from per-segment hazards.

        Request Body:
            segments (list): Hazards with start_km / end_km per segment
            cargo_flags (list): Cargo characteristics for every segment
            vehicle (dict): Optional height_m / gross_weight_t
        """
        serializer = RouteRiskRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": "Invalid input data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        aggregator = RiskAggregator()
        cargo_flags = frozenset(serializer.validated_data.get("cargo_flags") or [])
        route_cargo = HazardObservation(cargo_flags=cargo_flags)
        vehicle = VehicleProfileSerializer.build_vehicle(serializer.validated_data.get("vehicle"))

        segment_risks = []
        warnings = []
        carried = set(cargo_flags)
        for index, segment in enumerate(serializer.validated_data["segments"]):
            observation = HazardObservationSerializer.build_observation(segment).merged_with(route_cargo)
            carried.update(observation.cargo_flags)
            start_km = segment.get("start_km", 0.0)
            end_km = segment.get("end_km", 0.0)
            segment_risks.append(
                aggregator.assess_segment(
                    observation,
                    segment_index=index,
                    start_km=start_km,
                    end_km=end_km,
                    vehicle=vehicle,
                )
            )
            warnings.extend(
                aggregator.hazard_warnings(
                    observation,
                    distance_from_start_km=(start_km + end_km) / 2,
                    segment_index=index,
                    vehicle=vehicle,
                )
            )

        route_risk = aggregator.assess_route(segment_risks, cargo_flags=carried)
        logger.info(f"Scored route of {len(segment_risks)} segments: {route_risk.overall.score}")
        return Response(
            {
                **route_risk.to_dict(),
                "hazard_warnings": [warning.to_dict() for warning in warnings],
            }
        )
