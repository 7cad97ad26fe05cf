"""
Local Geo Service Implementation

Straight-line (haversine) distances computed in-process.
Used in development mode (ENV_MODE=development) and as the fallback
when the Google API is unavailable.
"""

import logging

from pizzeria.services.geo.base import (
    BaseGeoService,
    DistanceResult,
    haversine_km,
)

logger = logging.getLogger(__name__)


class LocalGeoService(BaseGeoService):
    """
    Haversine geo service.

    Estimates travel time from an assumed average city speed.

    Example:
        >>> service = LocalGeoService()
        >>> result = await service.calculate_distance(6.9271, 79.8612, 7.2906, 80.6337)
        >>> round(result.distance_km)
        94
    """

    def __init__(self, average_speed_kmh: float = 25.0):
        self.average_speed_kmh = average_speed_kmh
        logger.info(f"LocalGeoService initialized (average_speed={average_speed_kmh} km/h)")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "local"

    async def calculate_distance(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float,
    ) -> DistanceResult:
        """Great-circle distance; never fails for finite coordinates."""
        distance_km = haversine_km(origin_lat, origin_lng, dest_lat, dest_lng)
        duration_minutes = int(distance_km / self.average_speed_kmh * 60)

        return DistanceResult(
            success=True,
            distance_km=distance_km,
            duration_minutes=max(duration_minutes, 5),  # Minimum 5 minutes
            provider=self.provider_name,
        )

    async def health_check(self) -> bool:
        """Local computation is always available."""
        return True
