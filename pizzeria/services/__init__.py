"""
                        Services Module

Business logic that sits between the HTTP layer and the stores.

Services:
    - geo: Distance and nearest-branch lookup (local haversine or Google Maps)
    - checkout: Cart to placed order
    - order_tracking: Order status workflow
"""

from pizzeria.services.checkout import DeliveryDetails, place_order
from pizzeria.services.geo import get_geo_service
from pizzeria.services import order_tracking

__all__ = ["DeliveryDetails", "place_order", "get_geo_service", "order_tracking"]
