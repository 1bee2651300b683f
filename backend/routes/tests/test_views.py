"""
Tests for Routes API Views.
"""

from unittest.mock import patch

from rest_framework import status
from rest_framework.test import APIClient

from common.tests.factories import straight_route


class TestRouteProfileView:
    def setup_method(self):
        self.client = APIClient()

    def test_returns_profile_and_totals(self):
        with patch("routes.views.MappingService") as mapping:
            mapping.return_value.fetch_route_profile.return_value = straight_route([(0, 0), (120, 90)])
            response = self.client.post(
                "/api/routes/profile/", {"locations": ["50.0,20.0", "51.2,20.0"]}, format="json"
            )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data["points"]) == 2
        assert response.data["total_distance_km"] == 120
        assert response.data["total_duration_minutes"] == 90
        assert response.data["average_speed_kmh"] == 80.0

    def test_requires_two_locations(self):
        response = self.client.post("/api/routes/profile/", {"locations": ["50.0,20.0"]}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error"] == "Invalid input data"

    def test_unparseable_location_is_bad_request(self, settings):
        settings.OPENROUTESERVICE_API_KEY = "ors-key"

        response = self.client.post(
            "/api/routes/profile/", {"locations": ["Warsaw", "Krakow"]}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["field"] == "locations"

    def test_unconfigured_routing_is_service_unavailable(self, settings):
        settings.OPENROUTESERVICE_API_KEY = None

        response = self.client.post(
            "/api/routes/profile/", {"locations": ["50.0,20.0", "51.0,20.0"]}, format="json"
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.data["error"] == "Routing service unavailable"


class TestInfoEndpoints:
    def setup_method(self):
        self.client = APIClient()

    def test_health_check(self, settings):
        settings.OPENWEATHER_API_KEY = None
        settings.ROAD_CONDITIONS_API_URL = "https://roads.example/conditions"

        response = self.client.get("/api/routes/health/")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == "healthy"
        availability = {c["service"]: c["available"] for c in response.data["collaborators"]}
        assert availability["openweathermap"] is False
        assert availability["road_conditions"] is True
        assert availability["overpass"] is True

    def test_api_info(self):
        response = self.client.get("/api/routes/")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["endpoints"]["analyze"] == "/api/hos/analyze/"

    def test_api_root(self):
        response = self.client.get("/api/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["endpoints"]["risk_analysis"] == "/api/risk/"
