"""
Mapping Service for external route calculation APIs.

Provides integration with OpenRouteService (driving-hgv profile) and turns
its GeoJSON directions response into a RouteProfile: cumulative distance
and driving time at every instruction step boundary.
"""

import logging
from typing import Dict, List

import requests
from django.conf import settings

from common.exceptions import ExternalCollaboratorUnavailable, RouteValidationError
from common.validators import calculate_distance_km, is_valid_coordinate
from routes.route_profile import RoutePoint, RouteProfile

logger = logging.getLogger(__name__)

# OpenRouteService rejects requests over 6,000 km; keep a margin for detours
MAX_ROUTE_DISTANCE_KM = 5000


class MappingService:
    """
    Service for integrating with external mapping APIs.

    Single Responsibility: External mapping API integration
    """

    SERVICE_NAME = "openrouteservice"

    def __init__(self):
        """Initialize mapping service with configuration."""
        self.base_url = "https://api.openrouteservice.org"
        self.api_key = getattr(settings, "OPENROUTESERVICE_API_KEY", None)
        self.timeout = getattr(settings, "EXTERNAL_API_TIMEOUT", 10)

        if not self.api_key:
            logger.warning("🔑 No OpenRouteService API key configured - route lookup unavailable")

    def fetch_route_profile(self, locations: List) -> RouteProfile:
        """
        Calculate a route between locations and return its time/distance profile.

        Args:
            locations: Coordinate dicts ({"lat", "lng"}) or "lat,lng" strings

        Returns:
            RouteProfile with one point per instruction step boundary

        Raises:
            RouteValidationError: If a location cannot be parsed or the
                route is too long
            ExternalCollaboratorUnavailable: If the API is not configured,
                unreachable or answers with an unusable payload
        """
        if not self.api_key:
            raise ExternalCollaboratorUnavailable(
                self.SERVICE_NAME, "OPENROUTESERVICE_API_KEY is not configured"
            )

        coordinates = self._parse_locations(locations)
        self._validate_route_distance(coordinates)

        route_data = self._call_openrouteservice_directions(coordinates)
        return self._parse_route_profile(route_data)

    def _parse_locations(self, locations: List) -> List[Dict]:
        """Normalize locations to {"lat", "lng"} dicts."""
        if len(locations) < 2:
            raise RouteValidationError("At least two locations are required", field="locations")

        coordinates = []
        for location in locations:
            if isinstance(location, dict) and "lat" in location and "lng" in location:
                lat, lng = float(location["lat"]), float(location["lng"])
            elif isinstance(location, str) and self._is_coordinate_string(location):
                lat, lng = self._parse_coordinates(location)
            else:
                raise RouteValidationError(
                    f"Could not process location '{location}': geocoding is not supported",
                    field="locations",
                )

            if not is_valid_coordinate(lat, lng):
                raise RouteValidationError(
                    f"Location out of range: ({lat}, {lng})", field="locations"
                )
            coordinates.append({"lat": lat, "lng": lng})

        return coordinates

    def _validate_route_distance(self, coordinates: List[Dict]) -> None:
        """Reject routes whose straight-line length already exceeds the API limit."""
        total_distance = sum(
            calculate_distance_km(a["lat"], a["lng"], b["lat"], b["lng"])
            for a, b in zip(coordinates, coordinates[1:])
        )

        logger.info(f"🌍 Estimated total route distance: {total_distance:.1f} km")

        if total_distance > MAX_ROUTE_DISTANCE_KM:
            logger.error(
                f"❌ Route distance ({total_distance:.1f} km) exceeds limit ({MAX_ROUTE_DISTANCE_KM} km)"
            )
            raise RouteValidationError(
                f"Route distance ({total_distance:.1f} km) exceeds OpenRouteService limit "
                f"({MAX_ROUTE_DISTANCE_KM} km)",
                field="locations",
            )

    def _call_openrouteservice_directions(self, coordinates: List[Dict]) -> Dict:
        """Call OpenRouteService directions API."""
        url = f"{self.base_url}/v2/directions/driving-hgv/geojson"

        # OpenRouteService expects [longitude, latitude]
        payload = {
            "coordinates": [[coord["lng"], coord["lat"]] for coord in coordinates],
            "instructions": True,
            "geometry": True,
            "elevation": False,
        }
        headers = {
            "Authorization": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json, application/geo+json",
        }

        logger.info(f"Making OpenRouteService request for {len(coordinates)} locations")

        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout:
            logger.error("❌ OpenRouteService request timed out")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "request timed out")
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ OpenRouteService request failed: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, str(e))
        except ValueError as e:
            logger.error(f"❌ Failed to parse OpenRouteService response: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "invalid JSON response")

    def _parse_route_profile(self, route_data: Dict) -> RouteProfile:
        """Build a RouteProfile from a GeoJSON directions response."""
        features = route_data.get("features") or []
        if not features:
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "no route found")

        feature = features[0]
        geometry = feature.get("geometry", {}).get("coordinates") or []
        segments = feature.get("properties", {}).get("segments") or []
        if not geometry:
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "route has no geometry")

        def point_at(index, distance_m, duration_s):
            lng, lat = geometry[min(index, len(geometry) - 1)][:2]
            return RoutePoint(
                distance_from_start_km=distance_m / 1000,
                time_offset_minutes=duration_s / 60,
                latitude=lat,
                longitude=lng,
            )

        points = [point_at(0, 0.0, 0.0)]
        distance_m = 0.0
        duration_s = 0.0

        for segment in segments:
            for step in segment.get("steps", []):
                step_distance = float(step.get("distance", 0) or 0)
                step_duration = float(step.get("duration", 0) or 0)
                if step_distance <= 0 and step_duration <= 0:
                    continue

                distance_m += step_distance
                duration_s += step_duration
                way_points = step.get("way_points") or [0, 0]
                points.append(point_at(way_points[-1], distance_m, duration_s))

        profile = RouteProfile.from_points(points)
        logger.info(
            f"✅ Route profile: {len(profile)} points, {profile.total_distance_km:.1f} km, "
            f"{profile.total_duration_minutes:.0f} min"
        )
        return profile

    def _is_coordinate_string(self, location: str) -> bool:
        """Check if location string is already coordinates."""
        try:
            parts = location.replace(",", " ").split()
            if len(parts) == 2:
                float(parts[0])
                float(parts[1])
                return True
        except ValueError:
            pass
        return False

    def _parse_coordinates(self, coord_string: str) -> tuple:
        """Parse coordinate string to lat, lng tuple."""
        parts = coord_string.replace(",", " ").split()
        return float(parts[0]), float(parts[1])

    def get_service_status(self) -> Dict:
        """Get current status of mapping service."""
        return {
            "service": self.SERVICE_NAME,
            "available": bool(self.api_key),
            "base_url": self.base_url,
            "profile": "driving-hgv",
        }
