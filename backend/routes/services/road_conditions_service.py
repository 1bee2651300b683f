"""
Road Conditions Service

Looks up road surface quality, surface type and traffic level near a
route point from a configurable JSON endpoint (ROAD_CONDITIONS_API_URL).
The endpoint is expected to answer
`{"road_quality": "...", "traffic_level": "...", "road_surface": "..."}`.

Without a configured endpoint every value is reported as unknown.
"""

import logging
from datetime import datetime
from typing import Optional

import requests
from django.conf import settings

from common.deadline import AnalysisDeadline, bounded_timeout
from common.exceptions import ExternalCollaboratorUnavailable
from risk_analysis.hazards import HazardObservation, RoadQuality, RoadSurface, TrafficLevel
from routes.services.lookup_cache import LookupCache

logger = logging.getLogger(__name__)


class RoadConditionsService:
    SERVICE_NAME = "road_conditions"

    def __init__(self, cache: Optional[LookupCache] = None):
        self.url = getattr(settings, "ROAD_CONDITIONS_API_URL", None)
        self.timeout = getattr(settings, "EXTERNAL_API_TIMEOUT", 10)
        self.cache = cache or LookupCache()

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def get_conditions(
        self,
        lat: float,
        lon: float,
        at: Optional[datetime] = None,
        deadline: Optional[AnalysisDeadline] = None,
    ) -> HazardObservation:
        """
        Road quality, surface and traffic level near a point.

        Returns:
            HazardObservation with only the road fields filled; None for
            unknown values

        Raises:
            ExternalCollaboratorUnavailable: If the configured endpoint fails
        """
        if not self.configured:
            return HazardObservation()

        return self.cache.get_or_fetch(
            self.SERVICE_NAME, lat, lon, lambda: self._fetch(lat, lon, deadline), at=at
        )

    def _fetch(self, lat: float, lon: float, deadline: Optional[AnalysisDeadline] = None) -> HazardObservation:
        timeout = bounded_timeout(deadline, self.timeout, self.SERVICE_NAME)
        try:
            response = requests.get(self.url, params={"lat": lat, "lon": lon}, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Road conditions request failed: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, str(e))
        except ValueError:
            logger.error("❌ Road conditions endpoint returned invalid JSON")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "invalid JSON response")

        conditions = HazardObservation(
            road_quality=_choice(data.get("road_quality"), RoadQuality.values),
            traffic_level=_choice(data.get("traffic_level"), TrafficLevel.values),
            road_surface=_choice(data.get("road_surface"), RoadSurface.values),
        )
        logger.debug(
            f"Road conditions at ({lat:.3f}, {lon:.3f}): {conditions.road_quality}, "
            f"{conditions.traffic_level}, {conditions.road_surface}"
        )
        return conditions


def _choice(value, allowed) -> Optional[str]:
    """Upper-case a value and keep it only if it is a known choice."""
    if not value:
        return None
    value = str(value).upper()
    return value if value in allowed else None
