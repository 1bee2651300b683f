"""
Routes services package.

This package contains the route analysis orchestration and the adapters
for the external collaborators (routing, weather, road conditions, POI
search and fuel prices), separated from views for better
maintainability and testability.
"""

from .fuel_price_service import FuelPriceService
from .lookup_cache import LookupCache
from .mapping_service import MappingService
from .overpass_service import OverpassService
from .road_conditions_service import RoadConditionsService
from .route_analyzer import (
    ComplianceReport,
    RouteAnalysisRequest,
    RouteAnalysisService,
)
from .weather_service import WeatherService

__all__ = [
    "ComplianceReport",
    "FuelPriceService",
    "LookupCache",
    "MappingService",
    "OverpassService",
    "RoadConditionsService",
    "RouteAnalysisRequest",
    "RouteAnalysisService",
    "WeatherService",
]
