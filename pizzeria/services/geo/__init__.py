"""
Geo Service Factory

Provides a single entry point for obtaining a geo service instance.
Automatically selects Local or Google Maps based on ENV_MODE configuration.

Usage:
    from pizzeria.services.geo import get_geo_service

    geo_service = get_geo_service()
    nearest = await geo_service.nearest_branch(branches, lat=6.9271, lng=79.8612)
"""

import logging
from functools import lru_cache

from pizzeria.core.config import get_settings
from pizzeria.services.geo.base import (
    BaseGeoService,
    DistanceResult,
    NearestBranchResult,
    haversine_km,
)
from pizzeria.services.geo.local import LocalGeoService
from pizzeria.services.geo.google import GoogleGeoService

logger = logging.getLogger(__name__)


@lru_cache()
def get_geo_service() -> BaseGeoService:
    """
    Get the configured geo service instance.

    Returns LocalGeoService in development and GoogleGeoService otherwise.

    Raises:
        ValueError: If production mode but Google API key not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Geo Service: Using LocalGeoService (development mode)")
        return LocalGeoService()

    logger.info(
        f"Geo Service: Using GoogleGeoService "
        f"({settings.env_mode.value} mode)"
    )
    return GoogleGeoService()


def reset_geo_service() -> None:
    """
    Clear the cached geo service instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_geo_service.cache_clear()
    logger.debug("Geo service cache cleared")


__all__ = [
    "get_geo_service",
    "reset_geo_service",
    "haversine_km",
    "BaseGeoService",
    "DistanceResult",
    "NearestBranchResult",
    "LocalGeoService",
    "GoogleGeoService",
]
