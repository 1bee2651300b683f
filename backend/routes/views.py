"""
Views for routes app.

Contains API views for route profile lookups, health checks and the API
index.
"""

import logging

from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from common.exceptions import ExternalCollaboratorUnavailable, RouteValidationError

from .serializers import RouteProfileRequestSerializer
from .services import (
    FuelPriceService,
    MappingService,
    OverpassService,
    RoadConditionsService,
    WeatherService,
)

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class RouteProfileView(APIView):
    """
    POST /api/routes/profile/

    Computes the time/distance profile of a truck route between locations.

    Input:
    - locations: Ordered "lat,lng" strings or {lat, lng} objects

    Output:
    - points with cumulative distance and driving time, plus totals
    """

    permission_classes = [AllowAny]

    def post(self, request):
        """Fetch a route profile from the routing provider."""
        serializer = RouteProfileRequestSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Invalid route profile input: {serializer.errors}")
            return Response(
                {"error": "Invalid input data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            profile = MappingService().fetch_route_profile(serializer.validated_data["locations"])
        except RouteValidationError as e:
            return Response(e.to_dict(), status=status.HTTP_400_BAD_REQUEST)
        except ExternalCollaboratorUnavailable as e:
            logger.error(f"Route profile lookup failed: {str(e)}")
            return Response(
                {"error": "Routing service unavailable", "details": str(e)},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        return Response(
            {
                "points": [point.to_dict() for point in profile.points],
                "total_distance_km": round(profile.total_distance_km, 3),
                "total_duration_minutes": round(profile.total_duration_minutes, 2),
                "average_speed_kmh": round(profile.average_speed_kmh, 1),
            }
        )


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """
    GET /api/routes/health/

    Health check with the configuration state of external collaborators.
    """
    road_conditions = RoadConditionsService()
    fuel_prices = FuelPriceService()
    return Response(
        {
            "status": "healthy",
            "message": "Route Compliance API is running",
            "collaborators": [
                MappingService().get_service_status(),
                WeatherService().get_service_status(),
                {"service": OverpassService.SERVICE_NAME, "available": True},
                {"service": road_conditions.SERVICE_NAME, "available": road_conditions.configured},
                {"service": fuel_prices.SERVICE_NAME, "available": bool(fuel_prices.base_url)},
            ],
        }
    )


@api_view(["GET"])
@permission_classes([AllowAny])
def api_info(request):
    """
    GET /api/routes/

    API information and available endpoints.
    """
    return Response(
        {
            "name": "Route Compliance API",
            "version": "1.0.0",
            "description": "Driver rest compliance and route risk analysis for commercial trucking",
            "endpoints": {
                "route_profile": "/api/routes/profile/",
                "health": "/api/routes/health/",
                "analyze": "/api/hos/analyze/",
                "analyze_batch": "/api/hos/analyze/batch/",
                "simulate": "/api/hos/simulate/",
                "policy": "/api/hos/policy/",
                "duty_status_transition": "/api/hos/duty-status/transition/",
                "weather_risk": "/api/risk/weather/",
                "route_risk": "/api/risk/route/",
            },
            "documentation": {
                "inputs": ["points or locations", "driver_state", "departure_time", "segment_hazards"],
                "outputs": ["rest_stops", "route_risk", "segment_risks", "warnings", "summary"],
                "rest_types": ["SHORT_BREAK", "DAILY_REST", "WEEKLY_REST"],
            },
        }
    )
