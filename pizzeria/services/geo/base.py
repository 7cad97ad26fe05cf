"""
Geo Service Abstract Base Class

Defines the interface contract for all distance service implementations.
Both LocalGeoService and GoogleGeoService must implement these methods.

Use Cases:
    - Distance from the customer to each branch
    - Picking the nearest active branch
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)

    a = math.sin(d_lat / 2) ** 2 + math.sin(d_lng / 2) ** 2 * math.cos(phi1) * math.cos(phi2)
    c = 2 * math.asin(min(1.0, math.sqrt(a)))
    return EARTH_RADIUS_KM * c


@dataclass
class DistanceResult:
    """
    Result from distance calculation between two points.

    Attributes:
        success: Whether calculation succeeded
        distance_km: Distance in kilometres
        duration_minutes: Estimated travel time, when the provider knows it
        provider: Which provider produced the figure
        error_message: Error if calculation failed
    """
    success: bool
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    provider: str = "unknown"
    error_message: Optional[str] = None


@dataclass
class NearestBranchResult:
    """The closest active branch and how far away it is."""
    branch: Any
    distance_km: float
    duration_minutes: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "branch_id": self.branch.id,
            "branch_name": self.branch.name,
            "distance_km": round(self.distance_km, 2),
            "duration_minutes": self.duration_minutes,
        }


def locatable_branches(branches: Sequence[Any]) -> list[Any]:
    """Active branches that have coordinates."""
    return [
        b for b in branches
        if b.active and b.latitude is not None and b.longitude is not None
    ]


class BaseGeoService(ABC):
    """
    Abstract base class for distance services.

    Example:
        >>> service = get_geo_service()
        >>> nearest = await service.nearest_branch(branches, 6.9271, 79.8612)
        >>> if nearest:
        ...     print(nearest.branch.name, nearest.distance_km)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the geo provider.

        Returns:
            str: Provider name (e.g., "local", "google")
        """
        pass

    @abstractmethod
    async def calculate_distance(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float,
    ) -> DistanceResult:
        """
        Calculate distance between two points.

        Args:
            origin_lat: Origin latitude (customer)
            origin_lng: Origin longitude
            dest_lat: Destination latitude (branch)
            dest_lng: Destination longitude

        Returns:
            DistanceResult: Distance and duration information
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the geo service.

        Returns:
            bool: True if service is operational
        """
        pass

    async def nearest_branch(
        self,
        branches: Sequence[Any],
        lat: float,
        lng: float,
    ) -> Optional[NearestBranchResult]:
        """
        Find the closest active branch with coordinates.

        Branches without a location or marked inactive are skipped. Ties
        keep the first branch in the given order.

        Returns:
            NearestBranchResult, or None when no branch qualifies
        """
        best: Optional[NearestBranchResult] = None

        for branch in locatable_branches(branches):
            result = await self.calculate_distance(lat, lng, branch.latitude, branch.longitude)
            if not result.success or result.distance_km is None:
                continue
            if best is None or result.distance_km < best.distance_km:
                best = NearestBranchResult(
                    branch=branch,
                    distance_km=result.distance_km,
                    duration_minutes=result.duration_minutes,
                )

        return best
