"""
Fuel Price Service

Client for a fuel price API configured through FUEL_PRICE_API_URL and
FUEL_PRICE_API_KEY. The API answers

    {"success": true, "data": [{"fuelType", "price", "currency", "stationName"}]}

for GET /api/fuel-prices?lat=..&lon=..&type=..

Single Responsibility: fuel price lookups
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Optional

import requests
from django.conf import settings

from common.deadline import AnalysisDeadline, bounded_timeout
from common.exceptions import ExternalCollaboratorUnavailable
from hos_compliance.rest_stops import FuelPrice
from routes.services.lookup_cache import LookupCache

logger = logging.getLogger(__name__)

PRICE_QUANTUM = Decimal("0.01")


class FuelPriceService:
    SERVICE_NAME = "fuel_price"

    def __init__(self, cache: Optional[LookupCache] = None):
        self.base_url = (getattr(settings, "FUEL_PRICE_API_URL", None) or "").rstrip("/")
        self.api_key = getattr(settings, "FUEL_PRICE_API_KEY", None)
        self.timeout = getattr(settings, "EXTERNAL_API_TIMEOUT", 10)
        self.cache = cache or LookupCache()

    def get_fuel_price(
        self,
        lat: float,
        lon: float,
        fuel_type: str = "diesel",
        at: Optional[datetime] = None,
        deadline: Optional[AnalysisDeadline] = None,
    ) -> FuelPrice:
        """
        Current fuel price near a location.

        Args:
            lat, lon: Location in decimal degrees
            fuel_type: Fuel type code, e.g. "diesel"
            at: Moment the price is needed for (cache hour bucket)
            deadline: Optional analysis budget bounding the request timeout

        Returns:
            FuelPrice with the price rounded to cents

        Raises:
            ExternalCollaboratorUnavailable: If the API is not configured,
                fails or has no data for the location
        """
        if not self.base_url:
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "FUEL_PRICE_API_URL is not configured")

        return self.cache.get_or_fetch(
            self.SERVICE_NAME,
            lat,
            lon,
            lambda: self._fetch(lat, lon, fuel_type, deadline),
            at=at,
            extra=fuel_type,
        )

    def get_route_fuel_prices(
        self, start_lat: float, start_lon: float, end_lat: float, end_lon: float, fuel_type: str = "diesel"
    ) -> Dict:
        """
        Prices at the start, midpoint and end of a route with min/max/average.

        Raises:
            ExternalCollaboratorUnavailable: If any of the three lookups fails
        """
        points = [
            (start_lat, start_lon),
            ((start_lat + end_lat) / 2, (start_lon + end_lon) / 2),
            (end_lat, end_lon),
        ]
        prices = [self.get_fuel_price(lat, lon, fuel_type) for lat, lon in points]
        values = [price.price for price in prices]

        return {
            "fuel_type": fuel_type,
            "currency": prices[0].currency,
            "prices": [str(value) for value in values],
            "min_price": str(min(values)),
            "max_price": str(max(values)),
            "average_price": str((sum(values) / len(values)).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)),
        }

    def _fetch(
        self, lat: float, lon: float, fuel_type: str, deadline: Optional[AnalysisDeadline] = None
    ) -> FuelPrice:
        params = {"lat": lat, "lon": lon, "type": fuel_type}
        if self.api_key:
            params["apiKey"] = self.api_key
        timeout = bounded_timeout(deadline, self.timeout, self.SERVICE_NAME)

        try:
            response = requests.get(f"{self.base_url}/api/fuel-prices", params=params, timeout=timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Fuel price request failed: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, str(e))
        except ValueError:
            logger.error("❌ Fuel price API returned invalid JSON")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "invalid JSON response")

        data = payload.get("data") or []
        if not payload.get("success") or not data:
            raise ExternalCollaboratorUnavailable(
                self.SERVICE_NAME, payload.get("message") or "no fuel price data"
            )

        entry = data[0]
        try:
            price = Decimal(str(entry["price"])).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
        except (KeyError, InvalidOperation) as e:
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, f"malformed price entry: {str(e)}")

        logger.debug(f"⛽ {fuel_type} at ({lat:.3f}, {lon:.3f}): {price} {entry.get('currency')}")

        return FuelPrice(
            fuel_type=entry.get("fuelType") or fuel_type,
            price=price,
            currency=entry.get("currency") or "",
            station_name=entry.get("stationName"),
        )
