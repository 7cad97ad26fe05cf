"""
Cart Engine Factory

Provides the process-wide cart engine bound to the local cart store.

Usage:
    from pizzeria.cart import get_cart_engine

    engine = get_cart_engine()
    lines = await engine.snapshot("colombo-01", user_id="uid-123")
"""

import logging
from functools import lru_cache

from pizzeria.cart.engine import CartEngine, cart_key
from pizzeria.cart.feed import ChangeFeed
from pizzeria.cart.store import CartStore
from pizzeria.core.config import get_settings
from pizzeria.database import cart_session_maker

logger = logging.getLogger(__name__)


@lru_cache()
def get_cart_engine() -> CartEngine:
    """Get the cached cart engine instance."""
    settings = get_settings()
    logger.info("Cart Engine: using local cart store")
    return CartEngine(
        store=CartStore(cart_session_maker),
        feed=ChangeFeed(),
        default_size=settings.default_size,
    )


def reset_cart_engine() -> None:
    """Clear the cached engine instance."""
    get_cart_engine.cache_clear()


__all__ = [
    "get_cart_engine",
    "reset_cart_engine",
    "CartEngine",
    "cart_key",
    "CartStore",
    "ChangeFeed",
]
