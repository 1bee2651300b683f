"""
HOS Compliance API Views.

Provides REST API endpoints for route compliance analysis, trip
simulation and duty status transitions. Views only validate input and
format output; all decisions are made by the service layer.
"""

import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from common.exceptions import (
    ComplianceViolation,
    ExternalCollaboratorUnavailable,
    RouteValidationError,
)
from routes.services import MappingService, RouteAnalysisService

from .policy import RestRegulationPolicy
from .serializers import (
    BatchRouteAnalysisRequestSerializer,
    DutyStatusTransitionSerializer,
    RouteAnalysisRequestSerializer,
    TripSimulationRequestSerializer,
)
from .services import DrivingStateTracker, TripTimeSimulator

logger = logging.getLogger(__name__)


class RouteComplianceViewSet(viewsets.ViewSet):
    """
    ViewSet for route compliance analysis.

    Combines trip simulation, hazard risk and rest stop planning into a
    single compliance report.
    """

    permission_classes = [AllowAny]

    @action(detail=False, methods=["post"])
    def analyze(self, request):
        """
        Analyze one route.

        Request Body:
            points (list): Route profile points; or
            locations (list): Locations to route between when points are absent
            driver_state (object): Driver's duty state before departure
            departure_time (datetime): Planned departure
            segment_hazards (list): Known hazards per segment
            cargo_flags (list): Cargo characteristics
        """
        data = request.data.copy()

        if not data.get("points") and data.get("locations"):
            try:
                profile = MappingService().fetch_route_profile(data["locations"])
            except RouteValidationError as e:
                return Response(e.to_dict(), status=status.HTTP_400_BAD_REQUEST)
            except ExternalCollaboratorUnavailable as e:
                logger.error(f"Route lookup failed: {str(e)}")
                return Response(
                    {"error": "Routing service unavailable", "details": str(e)},
                    status=status.HTTP_503_SERVICE_UNAVAILABLE,
                )
            data["points"] = [point.to_dict() for point in profile.points]

        serializer = RouteAnalysisRequestSerializer(data=data)
        if not serializer.is_valid():
            logger.warning(f"Invalid route analysis input: {serializer.errors}")
            return Response(
                {"error": "Invalid input data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            report = RouteAnalysisService().analyze(serializer.build_request())
        except RouteValidationError as e:
            return Response(e.to_dict(), status=status.HTTP_400_BAD_REQUEST)

        return Response(report.to_dict())

    @action(detail=False, methods=["post"])
    def analyze_batch(self, request):
        """
        Analyze several independent routes concurrently.

        Routes the engine rejects are reported in place without failing
        the others.
        """
        serializer = BatchRouteAnalysisRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": "Invalid input data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        analyses = [
            RouteAnalysisRequestSerializer.request_from(item)
            for item in serializer.validated_data["routes"]
        ]
        results = RouteAnalysisService().analyze_many(
            analyses, timeout_seconds=serializer.validated_data.get("timeout_seconds")
        )

        return Response(
            {
                "results": [result.to_dict() for result in results],
                "count": len(results),
            }
        )


class TripSimulationViewSet(viewsets.ViewSet):
    """ViewSet for rest requirement simulation without hazard lookups."""

    permission_classes = [AllowAny]

    @action(detail=False, methods=["post"])
    def simulate(self, request):
        serializer = TripSimulationRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": "Invalid input data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        try:
            result = TripTimeSimulator().simulate(
                data["profile"], data["state"], data.get("departure_time")
            )
        except RouteValidationError as e:
            return Response(e.to_dict(), status=status.HTTP_400_BAD_REQUEST)

        logger.info(f"Simulated trip: {len(result.requirements)} rest requirements")
        return Response(result.to_dict())

    @action(detail=False, methods=["get"])
    def policy(self, request):
        """Regulatory thresholds currently in force."""
        return Response(RestRegulationPolicy.from_settings().to_dict())


class DutyStatusViewSet(viewsets.ViewSet):
    """
    ViewSet for duty status transitions.

    A refused transition into DRIVING is not an error: the response keeps
    the unchanged state and carries a compliance warning.
    """

    permission_classes = [AllowAny]

    @action(detail=False, methods=["post"])
    def transition(self, request):
        """
        Apply a duty status change to a driver state.

        Request Body:
            state (object): Current duty state
            status (str): New duty status
            at (datetime): When the new status starts
        """
        serializer = DutyStatusTransitionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": "Invalid input data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        tracker = DrivingStateTracker()
        state = serializer.build_state()

        try:
            new_state = tracker.transition(state, serializer.build_event())
        except RouteValidationError as e:
            return Response(e.to_dict(), status=status.HTTP_400_BAD_REQUEST)
        except ComplianceViolation as violation:
            logger.info(f"Duty status transition refused: {str(violation)}")
            return Response(
                {
                    "accepted": False,
                    "state": state.to_dict(),
                    "warning": violation.to_warning(),
                    "required_rest_status": str(tracker.required_rest_status(violation.ceilings)),
                }
            )

        projected = tracker.project(new_state, new_state.status_start_time)
        return Response(
            {
                "accepted": True,
                "state": new_state.to_dict(),
                "remaining_capacity_minutes": {
                    name: round(value, 2)
                    for name, value in tracker.remaining_capacity(projected).items()
                },
                "can_drive": tracker.can_drive(projected),
            }
        )
