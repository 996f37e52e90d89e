"""
Distance Service.

Road distance between two coordinates from the Google Distance Matrix API,
with a great-circle (haversine) estimate when no API key is configured or
the upstream call fails. With the estimate disabled those cases raise
DistanceUnavailableError instead. Distances are rounded to 2 decimals.
"""

import logging
import math
from dataclasses import dataclass

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import DistanceUnavailableError
from backend.app.core.reliability import CircuitOpenError, distance_circuit_breaker

logger = logging.getLogger(__name__)

DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

# Rough travel time when only the straight-line distance is known
MINUTES_PER_KM = 2


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def as_param(self) -> str:
        return f"{self.lat},{self.lng}"


@dataclass(frozen=True)
class DistanceResult:
    distance_km: float
    duration_minutes: int
    source: str  # google, haversine, haversine_fallback


class DistanceLookupError(Exception):
    pass


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Returns:
        Distance in kilometers, rounded to 2 decimals
    """
    R = 6371.0

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round(R * c, 2)


class DistanceService:

    def __init__(self, api_key: str = None, timeout: float = 5.0, allow_estimate: bool = True):
        self.api_key = api_key
        self.timeout = timeout
        self.allow_estimate = allow_estimate

    @staticmethod
    def estimate(origin: Coordinates, destination: Coordinates, source: str = "haversine") -> DistanceResult:
        distance_km = haversine_distance(origin.lat, origin.lng, destination.lat, destination.lng)
        return DistanceResult(
            distance_km=distance_km,
            duration_minutes=round(distance_km * MINUTES_PER_KM),
            source=source,
        )

    async def get_distance(self, origin: Coordinates, destination: Coordinates) -> DistanceResult:
        if not self.api_key:
            if not self.allow_estimate:
                raise DistanceUnavailableError("No distance provider configured")
            return self.estimate(origin, destination)

        try:
            return await distance_circuit_breaker.call(self._fetch, origin, destination)
        except (CircuitOpenError, DistanceLookupError, httpx.HTTPError) as e:
            if not self.allow_estimate:
                logger.error("Distance lookup failed: %s", e)
                raise DistanceUnavailableError()
            logger.warning("Distance lookup failed, using haversine: %s", e)
            return self.estimate(origin, destination, source="haversine_fallback")

    async def _fetch(self, origin: Coordinates, destination: Coordinates) -> DistanceResult:
        params = {
            "origins": origin.as_param(),
            "destinations": destination.as_param(),
            "key": self.api_key,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(DISTANCE_MATRIX_URL, params=params)
            response.raise_for_status()
            data = response.json()

        if data.get("status") != "OK":
            raise DistanceLookupError(data.get("error_message") or data.get("status"))

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError):
            raise DistanceLookupError("Invalid response structure from Distance Matrix API")

        if element.get("status") != "OK":
            raise DistanceLookupError(f"Route not found: {element.get('status')}")

        return DistanceResult(
            distance_km=round(element["distance"]["value"] / 1000, 2),
            duration_minutes=round(element["duration"]["value"] / 60),
            source="google",
        )


distance_service = DistanceService(
    api_key=settings.google_maps_api_key,
    timeout=settings.distance_timeout_seconds,
    allow_estimate=settings.distance_allow_estimate,
)


def get_distance_service() -> DistanceService:
    """FastAPI dependency; overridden in tests."""
    return distance_service
