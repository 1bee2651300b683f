"""
OpenStreetMap Overpass API Service

Searches amenities (fuel stations, truck stops, rest areas, parking,
hotels) around a route point using the Overpass API and parses them into
PointOfInterest candidates for rest stop planning.

Single Responsibility: OSM data fetching and parsing
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Dict, FrozenSet, List, Optional, Sequence

import requests
from django.conf import settings

from common.deadline import AnalysisDeadline, bounded_timeout
from common.exceptions import ExternalCollaboratorUnavailable
from hos_compliance.rest_stops import AmenityType, PointOfInterest
from routes.services.lookup_cache import LookupCache

logger = logging.getLogger(__name__)

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"

# Amenity types that are plain OSM `amenity=*` values
OSM_AMENITY_VALUES = frozenset(
    amenity.value
    for amenity in (
        AmenityType.FUEL,
        AmenityType.PARKING,
        AmenityType.RESTAURANT,
        AmenityType.CAFE,
        AmenityType.TOILETS,
    )
)

_CHARGE_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)")


class OverpassService:
    """
    Service for fetching amenities from OpenStreetMap Overpass API.

    Handles:
    - Radius searches around a point for the requested amenity types
    - Parsing OSM tags into facilities, truck access and parking fees
    - Caching by rounded coordinates and hour bucket
    """

    SERVICE_NAME = "overpass"

    def __init__(self, cache: Optional[LookupCache] = None):
        """Initialize Overpass service with configuration."""
        self.base_url = getattr(settings, "OVERPASS_URL", DEFAULT_OVERPASS_URL)
        self.timeout = getattr(settings, "EXTERNAL_API_TIMEOUT", 10)
        self.cache = cache or LookupCache()

    def search_nearby(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        amenity_types: Sequence[str],
        deadline: Optional[AnalysisDeadline] = None,
    ) -> List[PointOfInterest]:
        """
        Fetch amenities within a radius of a point.

        Args:
            lat, lon: Search center in decimal degrees
            radius_km: Search radius in kilometers
            amenity_types: AmenityType values to look for
            deadline: Optional analysis budget bounding the request timeout

        Returns:
            List of PointOfInterest candidates (possibly empty)

        Raises:
            ExternalCollaboratorUnavailable: If the Overpass API fails
        """
        amenity_types = sorted(str(amenity) for amenity in amenity_types)
        extra = f"{radius_km:g}:{','.join(amenity_types)}"
        return self.cache.get_or_fetch(
            self.SERVICE_NAME,
            lat,
            lon,
            lambda: self._fetch(lat, lon, radius_km, amenity_types, deadline),
            extra=extra,
        )

    def _fetch(self, lat, lon, radius_km, amenity_types, deadline=None) -> List[PointOfInterest]:
        timeout = bounded_timeout(deadline, self.timeout, self.SERVICE_NAME)
        query = self._build_overpass_query(lat, lon, radius_km, amenity_types)

        logger.info(f"🌍 Searching OSM amenities within {radius_km:g} km of ({lat:.3f}, {lon:.3f})")
        logger.debug(f"📝 Overpass query: {query[:200]}...")

        try:
            response = requests.post(self.base_url, data={"data": query}, timeout=timeout)
            response.raise_for_status()
            elements = response.json().get("elements", [])
        except requests.exceptions.Timeout:
            logger.error("❌ Overpass API request timed out")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "request timed out")
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Overpass API request failed: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, str(e))
        except ValueError as e:
            logger.error(f"❌ Failed to parse Overpass API response: {str(e)}")
            raise ExternalCollaboratorUnavailable(self.SERVICE_NAME, "invalid JSON response")

        logger.info(f"✅ Retrieved {len(elements)} OSM elements")
        return self._parse_osm_elements(elements)

    def _build_overpass_query(self, lat, lon, radius_km, amenity_types) -> str:
        around = f"around:{int(radius_km * 1000)},{lat},{lon}"
        clauses = []

        amenity_values = [a for a in amenity_types if a in OSM_AMENITY_VALUES]
        if amenity_values:
            amenity_regex = "|".join(amenity_values)
            clauses.append(f'nwr[amenity~"^({amenity_regex})$"]({around});')

        if AmenityType.REST_AREA in amenity_types:
            clauses.append(f'nwr[highway~"^(rest_area|services)$"]({around});')

        if AmenityType.TRUCK_STOP in amenity_types:
            clauses.append(f'nwr["truck_stop"="yes"]({around});')
            clauses.append(f'nwr["amenity"="fuel"]["fuel:HGV"="yes"]({around});')

        if AmenityType.HOTEL in amenity_types:
            clauses.append(f'nwr[tourism~"^(hotel|motel)$"]({around});')

        body = "\n    ".join(clauses)
        query = f"""
    [out:json][timeout:{int(self.timeout)}];
    (
    {body}
    );
    out center;
        """
        return query.strip()

    def _parse_osm_elements(self, elements: List[Dict]) -> List[PointOfInterest]:
        """Parse OSM elements, skipping the ones that are not usable."""
        amenities = []
        seen = set()

        for element in elements:
            try:
                amenity = self._parse_single_element(element)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    f"⚠️ Failed to parse OSM element {element.get('id', 'unknown')}: {str(e)}"
                )
                continue

            if amenity and amenity.osm_id not in seen:
                seen.add(amenity.osm_id)
                amenities.append(amenity)

        return amenities

    def _parse_single_element(self, element: Dict) -> Optional[PointOfInterest]:
        tags = element.get("tags", {})
        if not tags:
            return None

        lat, lon = self._extract_coordinates(element)
        if lat is None or lon is None:
            return None

        amenity_type = self._determine_amenity_type(tags)
        if not amenity_type:
            return None

        truck_info = self._extract_truck_info(tags)

        return PointOfInterest(
            osm_id=int(element["id"]),
            latitude=float(lat),
            longitude=float(lon),
            amenity_type=amenity_type,
            name=self._extract_name(tags),
            facilities=self._extract_facilities(tags, amenity_type, truck_info),
            rating=self._extract_rating(tags),
            truck_accessible=truck_info["truck_accessible"],
            hgv_parking=truck_info["hgv_parking"],
            parking_fee_per_hour=self._extract_parking_fee(tags),
        )

    def _extract_coordinates(self, element: Dict) -> tuple:
        """Extract lat/lon coordinates from OSM element."""
        if element["type"] == "node":
            return element.get("lat"), element.get("lon")
        elif element["type"] in ["way", "relation"]:
            # Use center coordinates provided by Overpass API
            center = element.get("center", {})
            return center.get("lat"), center.get("lon")
        return None, None

    def _determine_amenity_type(self, tags: Dict) -> Optional[str]:
        """Determine standardized amenity type from OSM tags."""
        # Truck stops first: an HGV fuel station is more useful than a plain one
        if tags.get("truck_stop") == "yes" or tags.get("amenity") == "truck_stop":
            return AmenityType.TRUCK_STOP
        if tags.get("amenity") == "fuel" and tags.get("fuel:HGV") == "yes":
            return AmenityType.TRUCK_STOP

        if tags.get("highway") in ["rest_area", "services"]:
            return AmenityType.REST_AREA

        if tags.get("tourism") in ["hotel", "motel"]:
            return AmenityType.HOTEL

        amenity = tags.get("amenity")
        if amenity in OSM_AMENITY_VALUES:
            return AmenityType(amenity)

        return None

    def _extract_name(self, tags: Dict) -> Optional[str]:
        """Extract name from OSM tags."""
        for name_key in ["name", "brand", "operator", "official_name"]:
            if name_key in tags:
                return tags[name_key]
        return None

    def _extract_truck_info(self, tags: Dict) -> Dict:
        """Extract truck accessibility information from OSM tags."""
        truck_accessible = (
            tags.get("fuel:HGV") == "yes"
            or tags.get("truck_stop") == "yes"
            or tags.get("hgv") == "yes"
            or tags.get("amenity") == "truck_stop"
            or tags.get("highway") in ["rest_area", "services"]
        )

        hgv_parking = (
            tags.get("parking:hgv") == "yes"
            or tags.get("hgv:parking") == "yes"
            or tags.get("amenity") == "truck_stop"
            or (tags.get("amenity") == "parking" and tags.get("hgv") in ["yes", "designated"])
        )

        return {"truck_accessible": truck_accessible, "hgv_parking": hgv_parking}

    def _extract_facilities(self, tags: Dict, amenity_type: str, truck_info: Dict) -> FrozenSet[str]:
        """Facility names used for rest stop matching."""
        facilities = set()

        if (
            amenity_type in [AmenityType.PARKING, AmenityType.TRUCK_STOP, AmenityType.REST_AREA]
            or truck_info["hgv_parking"]
            or tags.get("parking") not in [None, "no"]
        ):
            facilities.add("parking")
        if tags.get("toilets") == "yes" or amenity_type == AmenityType.TOILETS:
            facilities.add("toilets")
        if tags.get("shower") == "yes" or tags.get("shower") == "hot":
            facilities.add("shower")
        if (
            tags.get("restaurant") == "yes"
            or tags.get("food") == "yes"
            or amenity_type in [AmenityType.RESTAURANT, AmenityType.CAFE]
        ):
            facilities.add("restaurant")
        if amenity_type == AmenityType.HOTEL or tags.get("motel") == "yes":
            facilities.add("lodging")
        if amenity_type == AmenityType.FUEL or tags.get("amenity") == "fuel":
            facilities.add("fuel")

        return frozenset(facilities)

    def _extract_rating(self, tags: Dict) -> Optional[float]:
        """Hotel stars are the only rating OSM carries."""
        stars = tags.get("stars")
        if not stars:
            return None
        try:
            return min(5.0, float(str(stars).rstrip("S")))
        except ValueError:
            return None

    def _extract_parking_fee(self, tags: Dict) -> Optional[Decimal]:
        """Hourly fee from a `charge` tag such as "2.50 EUR/hour"."""
        if tags.get("fee") != "yes":
            return None
        charge = tags.get("charge", "")
        match = _CHARGE_PATTERN.search(charge)
        if not match or "hour" not in charge.lower():
            return None
        try:
            return Decimal(match.group(1).replace(",", "."))
        except InvalidOperation:
            return None
