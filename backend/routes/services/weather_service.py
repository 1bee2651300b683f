"""
OpenWeatherMap Weather Service

Fetches current conditions or the nearest 3-hour forecast slot for a
route point and maps them onto a HazardObservation the risk aggregator
understands.

Single Responsibility: weather data fetching and parsing
"""

import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Dict, List, Optional

import requests
from django.conf import settings
from django.utils import timezone

from common.deadline import AnalysisDeadline, bounded_timeout
from common.exceptions import ExternalCollaboratorUnavailable
from risk_analysis.hazards import HazardObservation
from routes.services.lookup_cache import LookupCache

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openweathermap.org/data/2.5"

# Requests closer to now than this use current weather instead of the forecast
CURRENT_WEATHER_WINDOW = timedelta(hours=1)
FORECAST_SLOT_HOURS = 3


class WeatherService:
    """
    Service for fetching weather from the OpenWeatherMap API.

    Handles:
    - Current weather for near-term lookups
    - 5-day / 3-hour forecast for planned passages, nearest slot wins
    - Caching by rounded coordinates and hour bucket
    """

    SERVICE_NAME = "openweathermap"

    def __init__(self, cache: Optional[LookupCache] = None):
        """Initialize weather service with configuration."""
        self.api_key = getattr(settings, "OPENWEATHER_API_KEY", None)
        self.base_url = getattr(settings, "OPENWEATHER_BASE_URL", DEFAULT_BASE_URL).rstrip("/")
        self.timeout = getattr(settings, "EXTERNAL_API_TIMEOUT", 10)
        self.cache = cache or LookupCache()

    def get_observation(
        self,
        lat: float,
        lon: float,
        at: Optional[datetime] = None,
        deadline: Optional[AnalysisDeadline] = None,
    ) -> HazardObservation:
        """
        Weather hazards expected at a location and time.

        Args:
            lat, lon: Location in decimal degrees
            at: Expected passage time (default: now)
            deadline: Optional analysis budget bounding the request timeout

        Returns:
            HazardObservation with only the weather fields filled

        Raises:
            ExternalCollaboratorUnavailable: If the API is not configured or fails
        """
        if not self.api_key:
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "OPENWEATHER_API_KEY is not configured")

        at = at or timezone.now()
        return self.cache.get_or_fetch(
            self.SERVICE_NAME,
            lat,
            lon,
            lambda: self._fetch_observation(lat, lon, at, deadline),
            at=at,
        )

    def _fetch_observation(
        self, lat: float, lon: float, at: datetime, deadline: Optional[AnalysisDeadline] = None
    ) -> HazardObservation:
        now = timezone.now()
        if abs(_aware(at) - now) <= CURRENT_WEATHER_WINDOW:
            logger.info(f"🌤️ Fetching current weather for ({lat:.3f}, {lon:.3f})")
            data = self._request("weather", lat, lon, deadline)
            return self._parse_entry(data, precipitation_key="1h", hours=1)

        logger.info(f"🌤️ Fetching forecast for ({lat:.3f}, {lon:.3f}) at {at.isoformat()}")
        data = self._request("forecast", lat, lon, deadline)
        entry = self._nearest_forecast_entry(data.get("list") or [], at)
        if entry is None:
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "forecast has no entries")
        return self._parse_entry(entry, precipitation_key="3h", hours=FORECAST_SLOT_HOURS)

    def _request(
        self, endpoint: str, lat: float, lon: float, deadline: Optional[AnalysisDeadline] = None
    ) -> Dict:
        params = {"lat": lat, "lon": lon, "appid": self.api_key, "units": "metric"}
        timeout = bounded_timeout(deadline, self.timeout, self.SERVICE_NAME)
        try:
            response = requests.get(f"{self.base_url}/{endpoint}", params=params, timeout=timeout)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout:
            logger.error("❌ OpenWeatherMap request timed out")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "request timed out")
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ OpenWeatherMap request failed: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, str(e))
        except ValueError as e:
            logger.error(f"❌ Failed to parse OpenWeatherMap response: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "invalid JSON response")

    def _nearest_forecast_entry(self, entries: List[Dict], at: datetime) -> Optional[Dict]:
        target = _aware(at).timestamp()
        usable = [entry for entry in entries if "dt" in entry]
        if not usable:
            return None
        return min(usable, key=lambda entry: abs(entry["dt"] - target))

    def _parse_entry(self, entry: Dict, precipitation_key: str, hours: int) -> HazardObservation:
        """Map an OpenWeatherMap current/forecast entry to hazards (precipitation per hour)."""
        main = entry.get("main", {})
        wind = entry.get("wind", {})
        weather = entry.get("weather") or [{}]

        def per_hour(block):
            amount = (entry.get(block) or {}).get(precipitation_key)
            return None if amount is None else float(amount) / hours

        condition = weather[0].get("main")

        return HazardObservation(
            temperature_c=main.get("temp"),
            rain_mm_per_hour=per_hour("rain"),
            snow_mm_per_hour=per_hour("snow"),
            wind_speed_ms=wind.get("speed"),
            visibility_m=entry.get("visibility"),
            condition=condition.upper() if condition else None,
        )

    def get_service_status(self) -> Dict:
        return {
            "service": self.SERVICE_NAME,
            "available": bool(self.api_key),
            "base_url": self.base_url,
        }


def _aware(moment: datetime) -> datetime:
    if timezone.is_naive(moment):
        return moment.replace(tzinfo=dt_timezone.utc)
    return moment
