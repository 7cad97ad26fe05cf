"""
Google Maps Geo Service Implementation

Production implementation using the Google Maps Distance Matrix API.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - GOOGLE_MAPS_API_KEY must be set in environment
    - Distance Matrix API must be enabled in Google Cloud Console

When Google cannot answer (timeout, quota, no route) the service falls
back to haversine distances so the nearest-branch lookup keeps working.

API Documentation:
    https://developers.google.com/maps/documentation/distance-matrix
"""

import asyncio
import logging
from typing import Any, Optional, Sequence

import googlemaps
from googlemaps.exceptions import ApiError, Timeout, TransportError

from pizzeria.core.config import get_settings
from pizzeria.services.geo.base import (
    BaseGeoService,
    DistanceResult,
    NearestBranchResult,
    locatable_branches,
)
from pizzeria.services.geo.local import LocalGeoService

logger = logging.getLogger(__name__)


class GoogleGeoService(BaseGeoService):
    """
    Production Google Maps geo service implementation.

    Configuration:
        Requires GOOGLE_MAPS_API_KEY environment variable.
    """

    def __init__(self, client: Optional[googlemaps.Client] = None):
        """
        Initialize Google Maps client with API key.

        Raises:
            ValueError: If GOOGLE_MAPS_API_KEY is not configured
        """
        if client is None:
            settings = get_settings()
            if not settings.google_maps_api_key:
                raise ValueError(
                    "GOOGLE_MAPS_API_KEY is required for production mode. "
                    "Set it in your .env file or environment variables."
                )
            client = googlemaps.Client(key=settings.google_maps_api_key)

        self._client = client
        self._fallback = LocalGeoService()

        logger.info("GoogleGeoService initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "google"

    async def _driving_matrix(
        self,
        origin: tuple[float, float],
        destinations: list[tuple[float, float]],
    ) -> Optional[list[dict]]:
        """One Distance Matrix row, or None when the API call failed."""
        try:
            # googlemaps is synchronous; keep it off the event loop
            result = await asyncio.to_thread(
                self._client.distance_matrix,
                origins=[origin],
                destinations=destinations,
                mode="driving",
                units="metric",
            )
            return result["rows"][0]["elements"]

        except Timeout:
            logger.error("Google: Distance Matrix timeout")
        except ApiError as e:
            logger.error(f"Google: API error - {e}")
        except TransportError as e:
            logger.error(f"Google: Transport error - {e}")
        except (KeyError, IndexError) as e:
            logger.error(f"Google: Unexpected response shape - {e}")
        return None

    @staticmethod
    def _element_to_result(element: dict) -> Optional[DistanceResult]:
        if element.get("status") != "OK":
            return None
        return DistanceResult(
            success=True,
            distance_km=element["distance"]["value"] / 1000,
            duration_minutes=int(element["duration"]["value"] / 60),
            provider="google",
        )

    async def calculate_distance(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float,
    ) -> DistanceResult:
        """
        Calculate driving distance using Google Distance Matrix API.
        """
        elements = await self._driving_matrix((origin_lat, origin_lng), [(dest_lat, dest_lng)])
        if elements:
            result = self._element_to_result(elements[0])
            if result is not None:
                return result

        logger.warning("Google: falling back to haversine distance")
        return await self._fallback.calculate_distance(origin_lat, origin_lng, dest_lat, dest_lng)

    async def nearest_branch(
        self,
        branches: Sequence[Any],
        lat: float,
        lng: float,
    ) -> Optional[NearestBranchResult]:
        """Single Distance Matrix call for all candidate branches."""
        candidates = locatable_branches(branches)
        if not candidates:
            return None

        elements = await self._driving_matrix(
            (lat, lng),
            [(b.latitude, b.longitude) for b in candidates],
        )
        if elements is None or len(elements) != len(candidates):
            logger.warning("Google: falling back to haversine nearest branch")
            return await self._fallback.nearest_branch(candidates, lat, lng)

        best: Optional[NearestBranchResult] = None
        for branch, element in zip(candidates, elements):
            result = self._element_to_result(element)
            if result is None:
                continue
            if best is None or result.distance_km < best.distance_km:
                best = NearestBranchResult(
                    branch=branch,
                    distance_km=result.distance_km,
                    duration_minutes=result.duration_minutes,
                )

        if best is None:
            # No drivable route to any branch
            return await self._fallback.nearest_branch(candidates, lat, lng)
        return best

    async def health_check(self) -> bool:
        """
        Verify Google Maps API connectivity.
        """
        try:
            result = await asyncio.to_thread(
                self._client.distance_matrix,
                origins=[(0.0, 0.0)],
                destinations=[(0.0, 0.0)],
            )
            healthy = result.get("status") == "OK"
            if healthy:
                logger.debug("Google: Health check passed")
            return healthy

        except (ApiError, Timeout, TransportError) as e:
            logger.error(f"Google: Health check failed - {e}")
            return False
